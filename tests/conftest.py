from __future__ import annotations

from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor

import fitz
import pytest

from src.infrastructure.config import AppConfig
from src.infrastructure.runtime import PdfRuntime, create_runtime
from tests.fakes import FakeEngine, FakeRasterizer


@pytest.fixture
def make_pdf() -> Callable[[list[str]], bytes]:
    def build(pages: list[str]) -> bytes:
        document = fitz.open()
        try:
            for text in pages:
                page = document.new_page()
                page.insert_text((72, 72), text)
            return document.tobytes(deflate=True, garbage=3)
        finally:
            document.close()

    return build


@pytest.fixture
def synthetic_pdf_bytes(make_pdf: Callable[[list[str]], bytes]) -> bytes:
    return make_pdf(["Cover page", "Chapter 1", "Chapter 2"])


@pytest.fixture
def runtime() -> Iterator[PdfRuntime]:
    pdf_runtime = create_runtime(
        AppConfig(max_pdf_size_mb=50, max_batch_size_mb=100, thumbnail_scale=0.2),
        setup_logging=False,
    )
    try:
        yield pdf_runtime
    finally:
        pdf_runtime.shutdown()


@pytest.fixture
def executor() -> Iterator[ThreadPoolExecutor]:
    pool = ThreadPoolExecutor(max_workers=1)
    try:
        yield pool
    finally:
        pool.shutdown(wait=True)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_rasterizer() -> FakeRasterizer:
    return FakeRasterizer()
