from __future__ import annotations

import logging
import uuid

from src.domain.errors import IndexOutOfRange, UnknownIdentity, ValidationError
from src.domain.models import Document, PageRef, WorkspaceMode
from src.domain.ports import AssemblyEngine
from src.services.range_parser import parse_page_ranges

logger = logging.getLogger(__name__)


def _new_token() -> str:
    return uuid.uuid4().hex


class PageRegistry:
    """Loaded documents plus the user's arrangement of their pages.

    Every page gets a session-scoped identity when its document is added.
    Order (merge) is a list of those identities; Selection (split) is a set of
    page indices into the one loaded document. All mutations are synchronous.
    """

    def __init__(
        self, engine: AssemblyEngine, mode: WorkspaceMode = WorkspaceMode.MERGE
    ) -> None:
        self.engine = engine
        self.mode = mode
        self._documents: dict[str, Document] = {}
        self._pages: dict[str, PageRef] = {}
        self._order: list[str] = []
        self._selection: set[int] = set()

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, identity: object) -> bool:
        return identity in self._pages

    # Documents

    def add_document(
        self, raw_bytes: bytes, name: str, page_count: int | None = None
    ) -> str:
        content = bytes(raw_bytes)
        if page_count is None:
            page_count = self.engine.page_count(content)

        if self.mode == WorkspaceMode.SPLIT:
            for existing_id in list(self._documents):
                self.remove_document(existing_id)

        document = Document(
            document_id=_new_token(),
            name=name,
            raw_bytes=content,
            page_count=page_count,
        )
        self._documents[document.document_id] = document
        for page_index in range(page_count):
            page_ref = PageRef(
                identity=_new_token(),
                document_id=document.document_id,
                page_index=page_index,
            )
            self._pages[page_ref.identity] = page_ref
            self._order.append(page_ref.identity)

        logger.info("Added %s (%d pages) as %s", name, page_count, document.document_id)
        return document.document_id

    def add_documents(self, files: list[tuple[str, bytes]]) -> list[str]:
        return [self.add_document(content, name) for name, content in files]

    def remove_document(self, document_id: str) -> list[str]:
        document = self._documents.pop(document_id, None)
        if document is None:
            return []

        removed = [
            identity
            for identity, page_ref in self._pages.items()
            if page_ref.document_id == document_id
        ]
        removed_set = set(removed)
        for identity in removed:
            del self._pages[identity]
        self._order = [identity for identity in self._order if identity not in removed_set]
        if not self._documents:
            self._selection.clear()

        logger.info("Removed %s and %d page(s)", document.name, len(removed))
        return removed

    def get_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    def documents(self) -> list[Document]:
        return list(self._documents.values())

    def clear(self) -> list[str]:
        removed: list[str] = []
        for document_id in list(self._documents):
            removed.extend(self.remove_document(document_id))
        return removed

    # Order

    @property
    def order(self) -> tuple[str, ...]:
        return tuple(self._order)

    def pages(self) -> list[PageRef]:
        return [self._pages[identity] for identity in self._order]

    def identities_for(self, document_id: str) -> list[str]:
        return [
            identity
            for identity in self._order
            if self._pages[identity].document_id == document_id
        ]

    def retained_page_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for identity in self._order:
            document_id = self._pages[identity].document_id
            counts[document_id] = counts.get(document_id, 0) + 1
        return counts

    def resolve(self, identity: str) -> tuple[str, int]:
        page_ref = self._pages.get(identity)
        if page_ref is None:
            raise UnknownIdentity(f"Unknown page identity: {identity}")
        return page_ref.document_id, page_ref.page_index

    def position_of(self, identity: str) -> int:
        if identity not in self._pages:
            raise UnknownIdentity(f"Unknown page identity: {identity}")
        return self._order.index(identity)

    def reorder(self, from_position: int, to_position: int) -> None:
        size = len(self._order)
        for position in (from_position, to_position):
            if not 0 <= position < size:
                raise IndexOutOfRange(f"Position {position} is outside 0..{size - 1}")
        if from_position == to_position:
            return
        identity = self._order.pop(from_position)
        self._order.insert(to_position, identity)

    def move_page(self, identity: str, target_identity: str) -> None:
        """Move ``identity`` to where ``target_identity`` currently sits."""
        if identity == target_identity:
            self.position_of(identity)
            return
        self.reorder(self.position_of(identity), self.position_of(target_identity))

    def remove_page(self, identity: str) -> bool:
        if self._pages.pop(identity, None) is None:
            return False
        self._order.remove(identity)
        return True

    # Selection

    @property
    def split_document(self) -> Document:
        if not self._documents:
            raise ValidationError("Load a PDF before selecting pages.")
        if len(self._documents) > 1:
            raise ValidationError("Page selection needs exactly one loaded PDF.")
        return next(iter(self._documents.values()))

    @property
    def selection(self) -> frozenset[int]:
        return frozenset(self._selection)

    def _check_page_index(self, page_index: int) -> None:
        page_count = self.split_document.page_count
        if not 0 <= page_index < page_count:
            raise IndexOutOfRange(f"Page index {page_index} is outside 0..{page_count - 1}")

    def select(self, page_index: int) -> None:
        self._check_page_index(page_index)
        self._selection.add(page_index)

    def deselect(self, page_index: int) -> None:
        self._selection.discard(page_index)

    def toggle_selection(self, page_index: int) -> bool:
        """Flip one page in or out of the selection; returns the new membership."""
        if page_index in self._selection:
            self._selection.discard(page_index)
            return False
        self.select(page_index)
        return True

    def select_range(self, text: str) -> frozenset[int]:
        """Replace the selection with the pages named by a range expression."""
        self._selection = parse_page_ranges(text, self.split_document.page_count)
        return self.selection

    def clear_selection(self) -> None:
        self._selection.clear()
