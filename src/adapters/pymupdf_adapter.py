from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Generator, cast

import fitz  # type: ignore[import-untyped]

from src.domain.errors import AssemblyError, LoadError, RenderCancelledError


def _open_pdf(raw_bytes: bytes) -> fitz.Document:
    try:
        document = fitz.open(stream=raw_bytes, filetype="pdf")
    except Exception as exc:
        raise LoadError("Unable to read PDF") from exc
    if document.needs_pass:
        document.close()
        raise LoadError("Encrypted PDFs are not supported")
    return document


@dataclass(frozen=True)
class CopiedPage:
    source: fitz.Document
    page_index: int


@dataclass(frozen=True)
class PageHandle:
    document: fitz.Document
    page_index: int


class PyMuPdfAssemblyEngine:
    @staticmethod
    def _optimized_bytes(document: fitz.Document) -> bytes:
        return cast(
            bytes,
            document.tobytes(
                garbage=4,
                clean=True,
                deflate=True,
                deflate_images=True,
                deflate_fonts=True,
            ),
        )

    def page_count(self, raw_bytes: bytes) -> int:
        with _open_pdf(raw_bytes) as document:
            return int(document.page_count)

    def create_document(self) -> fitz.Document:
        return fitz.open()

    def load_document(self, raw_bytes: bytes) -> fitz.Document:
        return _open_pdf(raw_bytes)

    def copy_page(self, handle: fitz.Document, page_index: int) -> CopiedPage:
        if not 0 <= page_index < handle.page_count:
            raise AssemblyError(
                f"Page {page_index + 1} does not exist (document has {handle.page_count} pages)"
            )
        return CopiedPage(source=handle, page_index=page_index)

    def append_page(self, target: fitz.Document, page: CopiedPage) -> None:
        try:
            target.insert_pdf(page.source, from_page=page.page_index, to_page=page.page_index)
        except Exception as exc:
            raise AssemblyError(f"Unable to copy page {page.page_index + 1}") from exc

    def serialize(self, handle: fitz.Document) -> bytes:
        try:
            return self._optimized_bytes(handle)
        except Exception as exc:
            raise AssemblyError("Unable to write output PDF") from exc

    def close(self, handle: fitz.Document) -> None:
        handle.close()


class PyMuPdfRenderTask:
    """Rasterizes one page on the PDF worker thread.

    Cancelling before the worker picks the job up stops it outright. Once the
    page is being rasterized the job runs to completion and the caller is
    expected to ignore the result.
    """

    def __init__(self, executor: Executor, page: PageHandle, scale: float) -> None:
        self._cancelled = threading.Event()
        self._future: Future[bytes] = executor.submit(self._rasterize, page, scale)

    def _rasterize(self, page: PageHandle, scale: float) -> bytes:
        if self._cancelled.is_set():
            raise RenderCancelledError("Rendering cancelled")
        loaded = page.document.load_page(page.page_index)
        matrix = fitz.Matrix(scale, scale)
        pixmap = loaded.get_pixmap(matrix=matrix, alpha=False)
        return cast(bytes, pixmap.tobytes("png"))

    def cancel(self) -> None:
        self._cancelled.set()
        self._future.cancel()

    async def _result(self) -> bytes:
        try:
            return await asyncio.wrap_future(self._future)
        except asyncio.CancelledError:
            if not self._cancelled.is_set():
                raise
            raise RenderCancelledError("Rendering cancelled") from None

    def __await__(self) -> Generator[object, None, bytes]:
        return self._result().__await__()


class PyMuPdfRasterizer:
    def __init__(self, executor: Executor) -> None:
        self.executor = executor

    def open_document(self, raw_bytes: bytes) -> fitz.Document:
        return _open_pdf(raw_bytes)

    def get_page(self, proxy: fitz.Document, page_index: int) -> PageHandle:
        return PageHandle(document=proxy, page_index=page_index)

    def render(self, page: PageHandle, scale: float) -> PyMuPdfRenderTask:
        return PyMuPdfRenderTask(self.executor, page, scale)

    def close(self, proxy: fitz.Document) -> None:
        # queued behind any render of this document still on the worker
        self.executor.submit(proxy.close)
