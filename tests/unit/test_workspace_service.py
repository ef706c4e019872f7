import asyncio
import gc
from concurrent.futures import ThreadPoolExecutor

import pytest

from src.domain.errors import ValidationError
from src.domain.models import RenderStatus, Status, WorkspaceMode
from src.infrastructure.config import AppConfig
from src.services.workspace_service import WorkspaceService
from tests.fakes import FakeEngine, FakeRasterizer, fake_pdf


def _workspace(
    fake_engine: FakeEngine,
    fake_rasterizer: FakeRasterizer,
    executor: ThreadPoolExecutor,
    mode: WorkspaceMode = WorkspaceMode.MERGE,
    config: AppConfig | None = None,
) -> WorkspaceService:
    return WorkspaceService(
        fake_engine,
        fake_rasterizer,
        config or AppConfig(max_pdf_size_mb=50, max_batch_size_mb=100, thumbnail_scale=0.4),
        executor,
        mode=mode,
    )


@pytest.mark.unit
def test_load_files_keeps_good_files_when_one_is_corrupt(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor)

    result = asyncio.run(
        workspace.load_files(
            [
                ("a.pdf", fake_pdf("A", 2)),
                ("broken.pdf", b"%PDF-garbage"),
                ("b.pdf", fake_pdf("B", 1)),
            ]
        )
    )

    assert [item.status for item in result.items] == [Status.SUCCESS, Status.ERROR, Status.SUCCESS]
    assert result.error_count == 1
    doc_a, doc_b = result.document_ids
    assert [(page.document_id, page.page_index) for page in workspace.registry.pages()] == [
        (doc_a, 0),
        (doc_a, 1),
        (doc_b, 0),
    ]
    assert workspace.scheduler.attached_documents() == [doc_a, doc_b]


@pytest.mark.unit
def test_load_files_enforces_upload_limits(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor)

    with pytest.raises(ValidationError):
        asyncio.run(workspace.load_files([("notes.txt", fake_pdf("A", 1))]))

    small = AppConfig(max_pdf_size_mb=1, max_batch_size_mb=1, thumbnail_scale=0.4)
    workspace = _workspace(fake_engine, fake_rasterizer, executor, config=small)
    with pytest.raises(ValidationError):
        asyncio.run(workspace.load_files([("big.pdf", b"x" * (2 * 1024 * 1024))]))


@pytest.mark.unit
def test_split_workspace_takes_one_file(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor, mode=WorkspaceMode.SPLIT)

    with pytest.raises(ValidationError):
        asyncio.run(
            workspace.load_files([("a.pdf", fake_pdf("A", 1)), ("b.pdf", fake_pdf("B", 1))])
        )


@pytest.mark.unit
def test_split_workspace_replaces_document_and_releases_proxy(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor, mode=WorkspaceMode.SPLIT)

    async def scenario() -> str:
        await workspace.load_files([("a.pdf", fake_pdf("A", 3))])
        result = await workspace.load_files([("b.pdf", fake_pdf("B", 2))])
        return result.document_ids[0]

    document_id = asyncio.run(scenario())

    assert workspace.scheduler.attached_documents() == [document_id]
    assert fake_rasterizer.closed == ["A"]


@pytest.mark.unit
def test_remove_document_disposes_its_renders(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor)

    async def scenario() -> tuple[str, str]:
        result = await workspace.load_files([("a.pdf", fake_pdf("A", 2)), ("b.pdf", fake_pdf("B", 1))])
        doc_a, doc_b = result.document_ids
        workspace.scheduler.sync_visible(workspace.registry.order)
        workspace.remove_document(doc_a)
        workspace.remove_document(doc_a)
        for task in fake_rasterizer.tasks:
            task.complete()
        await workspace.scheduler.wait_idle()
        return doc_a, doc_b

    doc_a, doc_b = asyncio.run(scenario())

    assert all(page.document_id == doc_b for page in workspace.registry.pages())
    assert fake_rasterizer.tasks[0].cancel_requested
    assert fake_rasterizer.tasks[1].cancel_requested
    assert fake_rasterizer.closed == ["A"]
    (remaining,) = workspace.registry.order
    assert workspace.scheduler.state(remaining).status == RenderStatus.RENDERED


@pytest.mark.unit
def test_reset_during_load_discards_the_late_document(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor)

    async def scenario() -> None:
        loading = asyncio.ensure_future(workspace.load_files([("a.pdf", fake_pdf("A", 2))]))
        await asyncio.sleep(0)
        workspace.reset()
        result = await loading
        assert result.items[0].status == Status.WARNING

    asyncio.run(scenario())

    assert len(workspace.registry) == 0
    assert workspace.registry.documents() == []
    assert fake_rasterizer.closed == ["A"]


@pytest.mark.unit
def test_render_thumbnails_reports_failures_as_missing(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor)

    async def scenario() -> dict[str, bytes | None]:
        await workspace.load_files([("a.pdf", fake_pdf("A", 2))])
        rendering = asyncio.ensure_future(workspace.render_thumbnails(workspace.registry.order))
        await asyncio.sleep(0)
        fake_rasterizer.tasks[0].complete()
        fake_rasterizer.tasks[1].fail(RuntimeError("broken content stream"))
        return await rendering

    thumbnails = asyncio.run(scenario())

    first, second = workspace.registry.order
    assert thumbnails[first] == b"A0@0.4"
    assert thumbnails[second] is None


@pytest.mark.unit
def test_export_merge_runs_on_worker(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor)

    async def scenario() -> bytes:
        await workspace.load_files([("a.pdf", fake_pdf("A", 2)), ("b.pdf", fake_pdf("B", 1))])
        workspace.reorder(2, 0)
        workspace.remove_page(workspace.registry.order[1])
        result = await workspace.export_merge()
        return result.output_pdf

    assert asyncio.run(scenario()) == b"B0,A1"


@pytest.mark.unit
def test_export_split_uses_selection(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor, mode=WorkspaceMode.SPLIT)

    async def scenario() -> tuple[str, bytes]:
        await workspace.load_files([("scan.pdf", fake_pdf("S", 6))])
        workspace.registry.select_range("5, 2-3")
        result = await workspace.export_split()
        return result.output_name, result.output_pdf

    assert asyncio.run(scenario()) == ("split-scan.pdf", b"S1,S2,S4")


@pytest.mark.unit
def test_page_window_slices_the_order_and_clamps_the_window(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor)
    asyncio.run(workspace.load_files([("long.pdf", fake_pdf("L", 25))]))

    window, pages, window_count = workspace.page_window(3, 10)
    assert (window, window_count) == (3, 3)
    assert [page.page_index for page in pages] == [20, 21, 22, 23, 24]

    window, pages, _ = workspace.page_window(9, 10)
    assert window == 3
    assert len(pages) == 5

    workspace.reset()
    assert workspace.page_window(2, 10) == (1, [], 1)


@pytest.mark.unit
def test_only_the_window_in_view_is_rendered(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor)

    async def show(window: int) -> dict[str, bytes | None]:
        _, pages, _ = workspace.page_window(window, 10)
        rendering = asyncio.ensure_future(
            workspace.render_thumbnails(page.identity for page in pages)
        )
        await asyncio.sleep(0)
        for task in fake_rasterizer.tasks:
            task.complete()
        return await rendering

    async def scenario() -> tuple[dict[str, bytes | None], dict[str, bytes | None]]:
        await workspace.load_files([("long.pdf", fake_pdf("L", 300))])
        return await show(1), await show(2)

    first, second = asyncio.run(scenario())

    order = workspace.registry.order
    assert list(first) == list(order[:10])
    assert list(second) == list(order[10:20])
    assert len(fake_rasterizer.tasks) == 20
    assert all(workspace.scheduler.state(identity) is None for identity in order[:10])
    assert second[order[10]] == b"L10@0.4"


@pytest.mark.unit
def test_abandoned_workspace_releases_rasterizer_documents(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    def open_and_abandon() -> None:
        workspace = _workspace(fake_engine, fake_rasterizer, executor)
        asyncio.run(workspace.load_files([("a.pdf", fake_pdf("A", 2))]))

    open_and_abandon()
    gc.collect()

    assert fake_rasterizer.closed == ["A"]


@pytest.mark.unit
def test_close_releases_documents_once(
    fake_engine: FakeEngine, fake_rasterizer: FakeRasterizer, executor: ThreadPoolExecutor
) -> None:
    workspace = _workspace(fake_engine, fake_rasterizer, executor)
    asyncio.run(workspace.load_files([("a.pdf", fake_pdf("A", 2))]))

    workspace.close()
    workspace.close()
    del workspace
    gc.collect()

    assert fake_rasterizer.closed == ["A"]
