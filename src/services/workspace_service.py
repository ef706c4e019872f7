from __future__ import annotations

import asyncio
import logging
import weakref
from concurrent.futures import Executor
from typing import Any, Iterable

from src.domain.errors import LoadError, ValidationError
from src.domain.models import (
    AssemblyResult,
    BatchItemResult,
    BatchOperationResult,
    OperationMessage,
    PageRef,
    RenderStatus,
    Status,
    WorkspaceMode,
)
from src.domain.ports import AssemblyEngine, Rasterizer
from src.infrastructure.config import AppConfig
from src.services.assembly_planner import AssemblyPlanner
from src.services.page_registry import PageRegistry
from src.services.render_scheduler import RenderScheduler

logger = logging.getLogger(__name__)


class WorkspaceService:
    """One in-memory editing session over the page registry.

    Registry mutations happen on the event loop; every PyMuPDF call is sent to
    ``executor``, which must run one job at a time.
    """

    def __init__(
        self,
        engine: AssemblyEngine,
        rasterizer: Rasterizer,
        config: AppConfig,
        executor: Executor,
        mode: WorkspaceMode = WorkspaceMode.MERGE,
    ) -> None:
        self.engine = engine
        self.rasterizer = rasterizer
        self.config = config
        self.executor = executor
        self.registry = PageRegistry(engine, mode=mode)
        self.scheduler = RenderScheduler(
            self.registry, rasterizer, default_scale=config.thumbnail_scale
        )
        self.planner = AssemblyPlanner(self.registry, engine)
        self._load_generation = 0
        # abandoned sessions still hand their rasterizer documents back
        self._release = weakref.finalize(self, self.scheduler.close)

    @property
    def mode(self) -> WorkspaceMode:
        return self.registry.mode

    def _validate_upload_limits(self, uploaded_files: list[tuple[str, bytes]]) -> None:
        if self.mode == WorkspaceMode.SPLIT and len(uploaded_files) > 1:
            raise ValidationError("Split works on one PDF at a time.")

        total_size = sum(len(content) for _, content in uploaded_files)
        if total_size > self.config.max_batch_size_bytes:
            raise ValidationError(f"Batch size exceeds limit of {self.config.max_batch_size_mb} MB")

        for name, content in uploaded_files:
            if not name.lower().endswith(".pdf"):
                raise ValidationError(f"Invalid file type for {name}. Only PDF files are allowed.")
            if len(content) > self.config.max_pdf_size_bytes:
                raise ValidationError(
                    f"{name} exceeds per-file limit of {self.config.max_pdf_size_mb} MB"
                )

    def _parse(self, content: bytes) -> tuple[int, Any]:
        page_count = self.engine.page_count(content)
        proxy = self.rasterizer.open_document(content)
        return page_count, proxy

    async def load_files(self, uploaded_files: list[tuple[str, bytes]]) -> BatchOperationResult:
        """Load files in selection order; a bad file only fails its own item."""
        if not uploaded_files:
            return BatchOperationResult(items=[])
        self._validate_upload_limits(uploaded_files)

        loop = asyncio.get_running_loop()
        load_generation = self._load_generation
        items: list[BatchItemResult] = []
        for name, raw in uploaded_files:
            content = bytes(raw)
            try:
                page_count, proxy = await loop.run_in_executor(self.executor, self._parse, content)
            except LoadError as exc:
                logger.warning("Could not load %s: %s", name, exc)
                items.append(
                    BatchItemResult(
                        source_name=name,
                        status=Status.ERROR,
                        messages=[OperationMessage(level="error", text=str(exc))],
                    )
                )
                continue

            if load_generation != self._load_generation:
                logger.info("Workspace was reset while loading %s; discarding it", name)
                self.rasterizer.close(proxy)
                items.append(
                    BatchItemResult(
                        source_name=name,
                        status=Status.WARNING,
                        messages=[
                            OperationMessage(
                                level="warning", text="Discarded: workspace was reset."
                            )
                        ],
                    )
                )
                continue

            document_id = self.registry.add_document(content, name, page_count=page_count)
            self._detach_orphans()
            self.scheduler.attach_document(document_id, proxy)
            items.append(
                BatchItemResult(
                    source_name=name,
                    status=Status.SUCCESS,
                    messages=[OperationMessage(level="info", text=f"Loaded {page_count} pages.")],
                    metrics={"document_id": document_id, "page_count": page_count},
                )
            )
        return BatchOperationResult(items=items)

    def _detach_orphans(self) -> None:
        # split mode replaces its document inside the registry
        loaded = {document.document_id for document in self.registry.documents()}
        for document_id in self.scheduler.attached_documents():
            if document_id not in loaded:
                self.scheduler.detach_document(document_id)

    def remove_document(self, document_id: str) -> None:
        for identity in self.registry.remove_document(document_id):
            self.scheduler.dispose(identity)
        self.scheduler.detach_document(document_id)

    def remove_page(self, identity: str) -> bool:
        self.scheduler.dispose(identity)
        return self.registry.remove_page(identity)

    def reorder(self, from_position: int, to_position: int) -> None:
        self.registry.reorder(from_position, to_position)

    def move_page(self, identity: str, target_identity: str) -> None:
        self.registry.move_page(identity, target_identity)

    def reset(self) -> None:
        self._load_generation += 1
        for document in self.registry.documents():
            self.remove_document(document.document_id)
        self.registry.clear_selection()

    def page_window(self, window: int, window_size: int) -> tuple[int, list[PageRef], int]:
        """Slice the Order into fixed-size windows for a paged thumbnail grid.

        Returns ``(window, pages, window_count)``. ``window`` is 1-based and
        clamped into range, so a number left over from a longer Order is safe.
        """
        pages = self.registry.pages()
        window_count = max(1, (len(pages) + window_size - 1) // window_size)
        window = min(max(window, 1), window_count)
        start = (window - 1) * window_size
        return window, pages[start : start + window_size], window_count

    async def render_thumbnails(
        self, identities: Iterable[str], scale: float | None = None
    ) -> dict[str, bytes | None]:
        """Render the identities in view and wait for them; failures map to ``None``."""
        states = self.scheduler.sync_visible(identities, scale)
        await self.scheduler.wait_idle()
        thumbnails: dict[str, bytes | None] = {}
        for identity in states:
            state = self.scheduler.state(identity)
            if state is not None and state.status == RenderStatus.FAILED:
                logger.warning("Thumbnail unavailable for %s: %s", identity, state.error)
            thumbnails[identity] = self.scheduler.thumbnail(identity)
        return thumbnails

    async def export_merge(self) -> AssemblyResult:
        plan = self.planner.merge_plan()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.planner.execute, plan)

    async def export_split(self) -> AssemblyResult:
        plan = self.planner.split_plan()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.planner.execute, plan)

    def close(self) -> None:
        self._load_generation += 1
        self._release()
