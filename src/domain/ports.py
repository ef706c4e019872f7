"""Interfaces of the two PDF collaborators the core drives."""

from __future__ import annotations

from typing import Any, Generator, Protocol


class AssemblyEngine(Protocol):
    """Byte-level page copy and serialization."""

    def page_count(self, raw_bytes: bytes) -> int:
        """Return the page count of ``raw_bytes`` or raise ``LoadError``."""

    def create_document(self) -> Any:
        """Return a new, empty output document handle."""

    def load_document(self, raw_bytes: bytes) -> Any:
        """Parse ``raw_bytes`` into a source handle or raise ``LoadError``."""

    def copy_page(self, handle: Any, page_index: int) -> Any:
        """Return a page object that can be appended to another handle."""

    def append_page(self, target: Any, page: Any) -> None:
        """Append a copied page object to ``target``."""

    def serialize(self, handle: Any) -> bytes:
        """Serialize ``handle`` to PDF bytes or raise ``AssemblyError``."""

    def close(self, handle: Any) -> None:
        """Release a handle returned by this engine."""


class RenderTask(Protocol):
    """A cancellable raster job; awaiting it yields PNG bytes."""

    def cancel(self) -> None:
        """Ask the job to stop. Awaiting a cancelled job raises ``RenderCancelledError``."""

    def __await__(self) -> Generator[Any, None, bytes]:
        ...


class Rasterizer(Protocol):
    """Page-to-image rendering."""

    def open_document(self, raw_bytes: bytes) -> Any:
        """Parse ``raw_bytes`` into a document proxy or raise ``LoadError``."""

    def get_page(self, proxy: Any, page_index: int) -> Any:
        """Return a page handle for ``page_index``."""

    def render(self, page: Any, scale: float) -> RenderTask:
        """Start rendering ``page`` at ``scale``."""

    def close(self, proxy: Any) -> None:
        """Release a proxy returned by ``open_document``."""
