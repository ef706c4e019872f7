from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

PDF_MIME_TYPE = "application/pdf"


class Status(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class WorkspaceMode(str, Enum):
    MERGE = "merge"
    SPLIT = "split"


class RenderStatus(str, Enum):
    UNRENDERED = "unrendered"
    PENDING = "pending"
    RENDERED = "rendered"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class Document:
    document_id: str
    name: str
    raw_bytes: bytes = field(repr=False)
    page_count: int

    @property
    def size_bytes(self) -> int:
        return len(self.raw_bytes)


@dataclass(frozen=True)
class PageRef:
    identity: str
    document_id: str
    page_index: int


@dataclass(frozen=True)
class RenderState:
    identity: str
    document_id: str
    status: RenderStatus
    generation: int = 0
    scale: float = 0.0
    surface: bytes | None = field(default=None, repr=False)
    error: str | None = None


@dataclass(frozen=True)
class PlanEntry:
    document_id: str
    page_index: int


@dataclass(frozen=True)
class AssemblyPlan:
    mode: WorkspaceMode
    entries: list[PlanEntry]
    output_name: str
    mime_type: str = PDF_MIME_TYPE


@dataclass(frozen=True)
class OperationMessage:
    level: str
    text: str


@dataclass(frozen=True)
class AssemblyResult:
    status: Status
    output_name: str
    output_pdf: bytes = field(repr=False)
    page_count: int
    messages: list[OperationMessage] = field(default_factory=list)
    mime_type: str = PDF_MIME_TYPE


@dataclass(frozen=True)
class BatchItemResult:
    source_name: str
    status: Status
    messages: list[OperationMessage] = field(default_factory=list)
    metrics: dict[str, int | str] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchOperationResult:
    items: list[BatchItemResult]

    @property
    def success_count(self) -> int:
        return len([item for item in self.items if item.status == Status.SUCCESS])

    @property
    def warning_count(self) -> int:
        return len([item for item in self.items if item.status == Status.WARNING])

    @property
    def error_count(self) -> int:
        return len([item for item in self.items if item.status == Status.ERROR])

    @property
    def document_ids(self) -> list[str]:
        return [
            str(item.metrics["document_id"])
            for item in self.items
            if item.status == Status.SUCCESS and "document_id" in item.metrics
        ]
