from __future__ import annotations

import logging
from typing import Any

from src.domain.errors import AssemblyError, PageStudioError, ValidationError
from src.domain.models import (
    AssemblyPlan,
    AssemblyResult,
    OperationMessage,
    PlanEntry,
    Status,
    WorkspaceMode,
)
from src.domain.ports import AssemblyEngine
from src.services.page_registry import PageRegistry

logger = logging.getLogger(__name__)

MERGED_OUTPUT_NAME = "merged-document.pdf"


class AssemblyPlanner:
    def __init__(self, registry: PageRegistry, engine: AssemblyEngine) -> None:
        self.registry = registry
        self.engine = engine

    def merge_plan(self) -> AssemblyPlan:
        pages = self.registry.pages()
        if not pages:
            raise ValidationError("Cannot merge when no pages remain.")
        return AssemblyPlan(
            mode=WorkspaceMode.MERGE,
            entries=[PlanEntry(page.document_id, page.page_index) for page in pages],
            output_name=MERGED_OUTPUT_NAME,
        )

    def split_plan(self) -> AssemblyPlan:
        document = self.registry.split_document
        selection = sorted(self.registry.selection)
        if not selection:
            raise ValidationError("Select at least one page to extract.")
        return AssemblyPlan(
            mode=WorkspaceMode.SPLIT,
            entries=[PlanEntry(document.document_id, index) for index in selection],
            output_name=f"split-{document.name}",
        )

    def execute(self, plan: AssemblyPlan) -> AssemblyResult:
        """Copy the plan's pages, in order, into a new PDF.

        Each source is parsed once however many of its pages are used. Pages
        whose source is no longer loaded are skipped with a warning; any
        engine failure aborts the whole export.
        """
        messages: list[OperationMessage] = []
        sources: dict[str, Any] = {}
        output = self.engine.create_document()
        copied = 0
        try:
            for entry in plan.entries:
                source = sources.get(entry.document_id)
                if source is None:
                    document = self.registry.get_document(entry.document_id)
                    if document is None:
                        logger.warning(
                            "Source %s missing; skipping page %d",
                            entry.document_id,
                            entry.page_index + 1,
                        )
                        messages.append(
                            OperationMessage(
                                level="warning",
                                text=(
                                    f"Skipped page {entry.page_index + 1}: "
                                    "its source PDF is no longer loaded."
                                ),
                            )
                        )
                        continue
                    source = self.engine.load_document(document.raw_bytes)
                    sources[entry.document_id] = source

                page = self.engine.copy_page(source, entry.page_index)
                self.engine.append_page(output, page)
                copied += 1

            if not copied:
                raise AssemblyError(f"No pages could be copied into {plan.output_name}.")
            output_pdf = self.engine.serialize(output)
        except AssemblyError:
            raise
        except PageStudioError as exc:
            raise AssemblyError(f"Unable to assemble {plan.output_name}: {exc}") from exc
        finally:
            for source in sources.values():
                self.engine.close(source)
            self.engine.close(output)

        logger.info("Assembled %s with %d page(s)", plan.output_name, copied)
        return AssemblyResult(
            status=Status.WARNING if messages else Status.SUCCESS,
            output_name=plan.output_name,
            output_pdf=output_pdf,
            page_count=copied,
            messages=messages,
            mime_type=plan.mime_type,
        )

    def merge(self) -> AssemblyResult:
        return self.execute(self.merge_plan())

    def split(self) -> AssemblyResult:
        return self.execute(self.split_plan())
