from __future__ import annotations

import asyncio
import base64

import streamlit as st

from src.domain.errors import PageStudioError
from src.domain.models import BatchOperationResult, PageRef, Status, WorkspaceMode
from src.infrastructure.config import AppConfig
from src.infrastructure.runtime import PdfRuntime, create_runtime
from src.services.range_parser import format_page_ranges
from src.services.workspace_service import WorkspaceService

MERGE_WINDOW_SIZE = 24
SPLIT_WINDOW_SIZE = 32


@st.cache_resource
def _runtime() -> PdfRuntime:
    return create_runtime(AppConfig())


def _workspace(mode: WorkspaceMode) -> WorkspaceService:
    key = f"workspace_{mode.value}"
    if key not in st.session_state:
        runtime = _runtime()
        st.session_state[key] = WorkspaceService(
            runtime.engine,
            runtime.rasterizer,
            runtime.config,
            runtime.executor,
            mode=mode,
        )
    workspace: WorkspaceService = st.session_state[key]
    return workspace


def _thumbnail_html(image_bytes: bytes | None, label: str, selected: bool = False) -> str:
    border = "2px solid #3b82f6" if selected else "1px solid rgba(120,120,120,0.35)"
    if image_bytes is None:
        body = "<div style='padding:40px 0;text-align:center;color:#999;'>No preview</div>"
    else:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        body = (
            f"<img src='data:image/png;base64,{encoded}' "
            "style='width:100%;height:auto;border-radius:6px;'/>"
        )
    return (
        f"<div style='border:{border};border-radius:10px;padding:8px;"
        "background:rgba(250,250,250,0.75);'>"
        "<div style='text-align:center;font-size:0.85rem;"
        f"font-weight:600;margin-bottom:6px;'>{label}</div>"
        f"{body}"
        "</div>"
    )


def _render_load_result(result: BatchOperationResult) -> None:
    for item in result.items:
        text = " | ".join(message.text for message in item.messages)
        if item.status == Status.SUCCESS:
            st.success(f"{item.source_name}: {text}")
        elif item.status == Status.WARNING:
            st.warning(f"{item.source_name}: {text}")
        else:
            st.error(f"{item.source_name}: {text}")


def _page_window(
    workspace: WorkspaceService, key_prefix: str, window_size: int
) -> tuple[int, list[PageRef]]:
    """Return the first Order position and the pages of the grid page in view."""
    current_key = f"{key_prefix}_thumbnail_page"
    st.session_state.setdefault(current_key, 1)
    current_page, pages, total_pages = workspace.page_window(
        int(st.session_state[current_key]), window_size
    )
    st.session_state[current_key] = current_page

    if total_pages > 1:
        info_col, nav_col = st.columns([3, 2])
        with info_col:
            st.caption(f"Showing page {current_page} of {total_pages}")
        with nav_col:
            selected_page = st.number_input(
                "Thumbnail page",
                min_value=1,
                max_value=total_pages,
                value=current_page,
                step=1,
                key=f"{key_prefix}_thumbnail_page_selector",
            )
            if int(selected_page) != current_page:
                st.session_state[current_key] = int(selected_page)
                st.rerun()

    return (current_page - 1) * window_size, pages


def _merge_tab(workspace: WorkspaceService) -> None:
    st.subheader("Merge & Reorder", anchor=False)
    st.caption("Load PDFs, arrange their pages, then merge.")

    uploaded = st.file_uploader(
        "Add one or more PDFs",
        type=["pdf"],
        accept_multiple_files=True,
        key="merge_upload",
    )
    col_add, col_reset = st.columns([1, 1])
    with col_add:
        if st.button("Add PDFs", type="primary", disabled=not uploaded):
            files = [(item.name, item.getvalue()) for item in uploaded] if uploaded else []
            try:
                _render_load_result(asyncio.run(workspace.load_files(files)))
            except PageStudioError as exc:
                st.error(str(exc))
    with col_reset:
        if st.button("Reset Workspace"):
            workspace.reset()
            st.rerun()

    registry = workspace.registry
    pages: list[PageRef] = registry.pages()
    if not pages:
        st.info("No PDFs loaded yet.")
        return

    for document in registry.documents():
        retained = registry.retained_page_counts().get(document.document_id, 0)
        col_name, col_remove = st.columns([4, 1])
        col_name.markdown(f"**{document.name}** ({retained} of {document.page_count} pages)")
        if col_remove.button("Remove PDF", key=f"remove_pdf_{document.document_id}"):
            workspace.remove_document(document.document_id)
            st.rerun()

    start, window = _page_window(workspace, "merge", MERGE_WINDOW_SIZE)
    thumbnails = asyncio.run(workspace.render_thumbnails(page.identity for page in window))
    names = {document.document_id: document.name for document in registry.documents()}

    columns = 6
    cols = st.columns(columns, gap="small")
    for offset, page in enumerate(window):
        position = start + offset
        with cols[offset % columns]:
            label = f"{position + 1}. {names[page.document_id]} p.{page.page_index + 1}"
            st.markdown(_thumbnail_html(thumbnails.get(page.identity), label), unsafe_allow_html=True)
            left, right, remove = st.columns(3)
            if left.button("◀", key=f"left_{page.identity}", disabled=position == 0):
                workspace.reorder(position, position - 1)
                st.rerun()
            if right.button("▶", key=f"right_{page.identity}", disabled=position == len(pages) - 1):
                workspace.reorder(position, position + 1)
                st.rerun()
            if remove.button("✕", key=f"remove_{page.identity}"):
                workspace.remove_page(page.identity)
                st.rerun()

    with st.form(key="move_form"):
        col_from, col_to = st.columns(2)
        from_number = col_from.number_input("Move page at", 1, len(pages), 1)
        to_number = col_to.number_input("to position", 1, len(pages), 1)
        if st.form_submit_button("Move"):
            workspace.reorder(int(from_number) - 1, int(to_number) - 1)
            st.rerun()

    if st.button("Merge", type="primary", use_container_width=True):
        try:
            result = asyncio.run(workspace.export_merge())
            for message in result.messages:
                st.warning(message.text)
            st.download_button(
                "Download merged PDF",
                data=result.output_pdf,
                file_name=result.output_name,
                mime=result.mime_type,
                use_container_width=True,
            )
        except PageStudioError as exc:
            st.error(str(exc))


def _split_tab(workspace: WorkspaceService) -> None:
    st.subheader("Split", anchor=False)
    st.caption("Pick pages from one PDF and save them as a new file.")

    uploaded = st.file_uploader("Choose a PDF", type=["pdf"], key="split_upload")
    if uploaded is not None and st.button("Open PDF", type="primary"):
        try:
            _render_load_result(
                asyncio.run(workspace.load_files([(uploaded.name, uploaded.getvalue())]))
            )
        except PageStudioError as exc:
            st.error(str(exc))

    registry = workspace.registry
    if not registry.documents():
        st.info("No PDF loaded yet.")
        return

    with st.form(key="range_form"):
        range_text = st.text_input("Select by range", placeholder="1-5, 8")
        col_apply, col_clear = st.columns(2)
        if col_apply.form_submit_button("Apply"):
            registry.select_range(range_text)
        if col_clear.form_submit_button("Clear Selection"):
            registry.clear_selection()

    selection = registry.selection
    st.caption(f"Selected: {format_page_ranges(selection) or 'none'}")

    _, window = _page_window(workspace, "split", SPLIT_WINDOW_SIZE)
    thumbnails = asyncio.run(workspace.render_thumbnails(page.identity for page in window))
    columns = 8
    cols = st.columns(columns, gap="small")
    for offset, page in enumerate(window):
        with cols[offset % columns]:
            selected = page.page_index in selection
            st.markdown(
                _thumbnail_html(
                    thumbnails.get(page.identity), f"Page {page.page_index + 1}", selected
                ),
                unsafe_allow_html=True,
            )
            if st.button(
                "Deselect" if selected else "Select",
                key=f"toggle_{page.identity}",
                use_container_width=True,
            ):
                registry.toggle_selection(page.page_index)
                st.rerun()

    if st.button(
        f"Extract Selected ({len(selection)})",
        type="primary",
        disabled=not selection,
        use_container_width=True,
    ):
        try:
            result = asyncio.run(workspace.export_split())
            st.download_button(
                "Download extracted PDF",
                data=result.output_pdf,
                file_name=result.output_name,
                mime=result.mime_type,
                use_container_width=True,
            )
        except PageStudioError as exc:
            st.error(str(exc))


def main() -> None:
    st.set_page_config(page_title="PDF Page Studio", layout="wide")
    st.title("PDF Page Studio", anchor=False)

    tab_merge, tab_split = st.tabs(["Merge & Reorder", "Split"])

    with tab_merge:
        _merge_tab(_workspace(WorkspaceMode.MERGE))

    with tab_split:
        _split_tab(_workspace(WorkspaceMode.SPLIT))


if __name__ == "__main__":
    main()
