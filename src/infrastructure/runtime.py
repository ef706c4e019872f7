"""Process-level wiring of the PDF collaborators.

MuPDF documents are not safe to use from several threads, so every PyMuPDF
call made on behalf of the event loop goes through one single-worker
executor shared by the assembly engine and the rasterizer.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from src.adapters.pymupdf_adapter import PyMuPdfAssemblyEngine, PyMuPdfRasterizer
from src.infrastructure.config import AppConfig
from src.infrastructure.logging_config import configure_logging


@dataclass
class PdfRuntime:
    config: AppConfig
    executor: ThreadPoolExecutor
    engine: PyMuPdfAssemblyEngine
    rasterizer: PyMuPdfRasterizer

    def shutdown(self) -> None:
        self.executor.shutdown(wait=True, cancel_futures=True)


def create_runtime(config: AppConfig | None = None, setup_logging: bool = True) -> PdfRuntime:
    config = config or AppConfig()
    if setup_logging:
        configure_logging(config.log_level)
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pymupdf")
    return PdfRuntime(
        config=config,
        executor=executor,
        engine=PyMuPdfAssemblyEngine(),
        rasterizer=PyMuPdfRasterizer(executor),
    )
