from __future__ import annotations

import logging
import os
from dataclasses import dataclass


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _get_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _get_log_level_env(name: str, default: str) -> str:
    value = os.getenv(name, default).strip().upper()
    return value if isinstance(logging.getLevelName(value), int) else default


@dataclass(frozen=True)
class AppConfig:
    max_pdf_size_mb: int = _get_int_env("PAGE_STUDIO_MAX_PDF_MB", 50)
    max_batch_size_mb: int = _get_int_env("PAGE_STUDIO_MAX_BATCH_MB", 100)
    thumbnail_scale: float = _get_float_env("PAGE_STUDIO_THUMBNAIL_SCALE", 0.4)
    log_level: str = _get_log_level_env("PAGE_STUDIO_LOG_LEVEL", "INFO")

    @property
    def max_pdf_size_bytes(self) -> int:
        return self.max_pdf_size_mb * 1024 * 1024

    @property
    def max_batch_size_bytes(self) -> int:
        return self.max_batch_size_mb * 1024 * 1024
