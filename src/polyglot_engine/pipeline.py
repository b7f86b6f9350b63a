"""
LangGraph-based workflows.

Two workflows cover the two halves of a translation, separated by the
asynchronous batch translation job:

- StartTranslationPipeline: discover -> fetch -> export -> submit
- ProcessTranslatedPipeline: correlate -> reconstruct -> write -> notify

Any stage error routes to an error node that records it; run() returns a
StageResult instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import operator
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, TypedDict

import httpx
from langgraph.graph import END, StateGraph

from polyglot_engine.auth import CredentialsProvider
from polyglot_engine.config import Settings
from polyglot_engine.export.exporter import BatchExporter, ExportResult
from polyglot_engine.library.client import LibraryClientPool
from polyglot_engine.models import (
    DiscoveredNode,
    FetchedNode,
    MergedNode,
    TranslationRequest,
)
from polyglot_engine.notification import send_completion_notification
from polyglot_engine.services.base import Services, SubmittedJob
from polyglot_engine.translation.correlator import CorrelatedJob, JobCorrelator
from polyglot_engine.translation.submitter import TranslationSubmitter
from polyglot_engine.tree.discover import TreeDiscoverer
from polyglot_engine.tree.fetch import ContentFetcher
from polyglot_engine.tree.flatten import count_nodes
from polyglot_engine.tree.reconstruct import TreeReconstructor
from polyglot_engine.tree.transform import transform_tree
from polyglot_engine.tree.writer import HierarchicalWriter, WriteReport

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """Pipeline processing stages."""

    INIT = "init"
    DISCOVER = "discover"
    FETCH = "fetch"
    EXPORT = "export"
    SUBMIT = "submit"
    CORRELATE = "correlate"
    RECONSTRUCT = "reconstruct"
    WRITE = "write"
    NOTIFY = "notify"
    COMPLETE = "complete"
    ERROR = "error"


class StartState(TypedDict):
    """State for the start-translation workflow."""

    request: TranslationRequest
    current_stage: PipelineStage
    failed_stage: PipelineStage | None
    discovered: DiscoveredNode | None
    fetched: FetchedNode | None
    exported: ExportResult | None
    submitted: SubmittedJob | None
    errors: Annotated[list[dict[str, Any]], operator.add]


class ProcessState(TypedDict):
    """State for the process-translated workflow."""

    job_id: str
    current_stage: PipelineStage
    failed_stage: PipelineStage | None
    correlated: CorrelatedJob | None
    tree: MergedNode | None
    report: WriteReport | None
    notified: bool
    errors: Annotated[list[dict[str, Any]], operator.add]


@dataclass
class ProgressInfo:
    """Progress information for callbacks."""

    stage: str  # Current stage name (discover, export, write, etc.)
    stage_display: str  # Human-readable stage description
    detail: str | None = None  # Additional detail message (e.g., "42 pages found")


# Type alias for progress callback
ProgressCallback = Callable[[ProgressInfo], None] | None


@dataclass
class StageResult:
    """Outcome of running one workflow."""

    success: bool
    stage: PipelineStage
    errors: list[dict[str, Any]] = field(default_factory=list)
    root_key: str | None = None
    job_id: str | None = None
    page_count: int = 0
    pages_created: int = 0
    failed_subtrees: list[str] = field(default_factory=list)
    notified: bool = False

    @property
    def message(self) -> str:
        """First error message, or an empty string on success."""
        if not self.errors:
            return ""
        return str(self.errors[0].get("error", ""))


def _stage_error(stage: PipelineStage, error: Exception) -> dict[str, Any]:
    return {
        "current_stage": PipelineStage.ERROR,
        "failed_stage": stage,
        "errors": [{"stage": stage.value, "error": str(error), "type": type(error).__name__}],
    }


def _route(next_node: str) -> Callable[[dict[str, Any]], str]:
    """Route to the error node if the last stage failed, else to next_node."""

    def route(state: dict[str, Any]) -> str:
        if state["current_stage"] == PipelineStage.ERROR:
            return "error"
        return next_node

    return route


class _Workflow(ABC):
    """Shared plumbing of both workflows."""

    def __init__(self, settings: Settings, services: Services, http: httpx.AsyncClient):
        """
        Initialize workflow.

        Args:
            settings: Engine settings.
            services: External services for this invocation.
            http: Shared HTTP client for library API calls.
        """
        self.settings = settings
        self.services = services
        self.clients = LibraryClientPool(
            CredentialsProvider(services.secrets), http, settings.platform
        )
        self._progress_callback: ProgressCallback = None
        self._graph = self._build_graph()

    @abstractmethod
    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow."""
        ...

    def _add_chain(self, workflow: StateGraph, nodes: list[tuple[str, Callable]]) -> None:
        for name, node in nodes:
            workflow.add_node(name, node)
        workflow.add_node("error", self._node_error)
        workflow.set_entry_point(nodes[0][0])
        for (name, _), (next_name, _) in zip(nodes, nodes[1:]):
            workflow.add_conditional_edges(
                name, _route(next_name), {next_name: next_name, "error": "error"}
            )
        last = nodes[-1][0]
        workflow.add_conditional_edges(last, _route("end"), {"end": END, "error": "error"})
        workflow.add_edge("error", END)

    def _report_progress(self, stage: str, stage_display: str, detail: str | None = None) -> None:
        """Report progress via callback if set."""
        if self._progress_callback:
            self._progress_callback(
                ProgressInfo(stage=stage, stage_display=stage_display, detail=detail)
            )

    async def _node_error(self, state: dict[str, Any]) -> dict[str, Any]:
        """Log recorded errors."""
        for error in state.get("errors", []):
            logger.error("Stage %s failed: %s", error.get("stage", "unknown"), error.get("error"))
        return {"current_stage": PipelineStage.ERROR}


class StartTranslationPipeline(_Workflow):
    """
    Workflow from a translation request to a submitted batch job.

    Discovers the text, retrieves and transforms its pages, exports them with
    the job metadata record and submits the translation job.
    """

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow."""
        workflow = StateGraph(StartState)
        self._add_chain(
            workflow,
            [
                ("discover", self._node_discover),
                ("fetch", self._node_fetch),
                ("export", self._node_export),
                ("submit", self._node_submit),
            ],
        )
        return workflow

    async def _node_discover(self, state: StartState) -> dict[str, Any]:
        """Discover the page hierarchy."""
        request = state["request"]
        self._report_progress("discover", "Discovering pages", f"{request.lib}/{request.path}")
        discoverer = TreeDiscoverer(self.clients, self.settings.platform, self.settings.rate_limit)
        try:
            root = await discoverer.discover(request.lib, request.path)
        except Exception as e:
            return _stage_error(PipelineStage.DISCOVER, e)
        return {
            "discovered": root,
            "current_stage": PipelineStage.FETCH,
        }

    async def _node_fetch(self, state: StartState) -> dict[str, Any]:
        """Retrieve and transform page contents."""
        discovered = state["discovered"]
        await asyncio.sleep(self.settings.rate_limit.before_content_fetch)
        self._report_progress(
            "fetch", "Retrieving page contents", f"{count_nodes(discovered)} pages found"
        )
        fetcher = ContentFetcher(self.clients, self.settings.platform)
        try:
            fetched = await fetcher.fetch_tree(discovered)
            transformed = transform_tree(fetched)
        except Exception as e:
            return _stage_error(PipelineStage.FETCH, e)
        return {
            "fetched": transformed,
            "current_stage": PipelineStage.EXPORT,
        }

    async def _node_export(self, state: StartState) -> dict[str, Any]:
        """Store pages and the job metadata record."""
        request = state["request"]
        self._report_progress("export", "Exporting pages")
        exporter = BatchExporter(
            self.services.object_store,
            self.settings.aws.input_bucket,
            self.settings.aws.output_bucket,
            max_concurrent=self.settings.storage.max_concurrent_uploads,
        )
        try:
            result = await exporter.export(
                state["fetched"],
                request.target_lib,
                request.target_path,
                request.notify_addrs,
            )
        except Exception as e:
            return _stage_error(PipelineStage.EXPORT, e)
        return {
            "exported": result,
            "current_stage": PipelineStage.SUBMIT,
        }

    async def _node_submit(self, state: StartState) -> dict[str, Any]:
        """Submit the batch translation job."""
        export = state["exported"]
        self._report_progress("submit", "Submitting translation job", export.root_key)
        submitter = TranslationSubmitter(
            self.services.translation,
            self.settings.aws.input_bucket,
            self.settings.aws.output_bucket,
            source_language=self.settings.translation.source_language,
            content_type=self.settings.translation.content_type,
        )
        try:
            job = await submitter.submit(export.root_key, state["request"].language)
        except Exception as e:
            return _stage_error(PipelineStage.SUBMIT, e)
        return {
            "submitted": job,
            "current_stage": PipelineStage.COMPLETE,
        }

    async def run(
        self,
        request: TranslationRequest,
        progress_callback: ProgressCallback = None,
    ) -> StageResult:
        """
        Run the workflow for one request.

        Args:
            request: Validated translation request.
            progress_callback: Optional callback for progress updates.

        Returns:
            StageResult with the root key, page count and job id on success.
        """
        self._progress_callback = progress_callback
        initial_state: StartState = {
            "request": request,
            "current_stage": PipelineStage.INIT,
            "failed_stage": None,
            "discovered": None,
            "fetched": None,
            "exported": None,
            "submitted": None,
            "errors": [],
        }
        logger.info(
            "Starting translation of %s/%s into %s", request.lib, request.path, request.language
        )
        app = self._graph.compile()
        final_state = await app.ainvoke(initial_state)

        export = final_state.get("exported")
        job = final_state.get("submitted")
        success = final_state["current_stage"] == PipelineStage.COMPLETE
        return StageResult(
            success=success,
            stage=final_state.get("failed_stage") or final_state["current_stage"],
            errors=list(final_state.get("errors") or []),
            root_key=export.root_key if export else None,
            job_id=job.job_id if job else None,
            page_count=export.page_count if export else 0,
        )


class ProcessTranslatedPipeline(_Workflow):
    """
    Workflow from a completed translation job to pages on the destination library.

    Correlates the job with its metadata, rebuilds the translated hierarchy,
    writes it to the destination library and notifies the requesters.
    """

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow."""
        workflow = StateGraph(ProcessState)
        self._add_chain(
            workflow,
            [
                ("correlate", self._node_correlate),
                ("reconstruct", self._node_reconstruct),
                ("write", self._node_write),
                ("notify", self._node_notify),
            ],
        )
        return workflow

    async def _node_correlate(self, state: ProcessState) -> dict[str, Any]:
        """Link the job to its manifest and metadata record."""
        self._report_progress("correlate", "Correlating translation job", state["job_id"])
        correlator = JobCorrelator(
            self.services.translation,
            self.services.object_store,
            self.settings.aws.output_bucket,
        )
        try:
            correlated = await correlator.correlate(state["job_id"])
        except Exception as e:
            return _stage_error(PipelineStage.CORRELATE, e)
        return {
            "correlated": correlated,
            "current_stage": PipelineStage.RECONSTRUCT,
        }

    async def _node_reconstruct(self, state: ProcessState) -> dict[str, Any]:
        """Rebuild the translated hierarchy."""
        correlated = state["correlated"]
        self._report_progress(
            "reconstruct",
            "Reconstructing translated text",
            f"{len(correlated.details.files)} files",
        )
        reconstructor = TreeReconstructor(
            self.services.object_store,
            max_concurrent=self.settings.storage.max_concurrent_downloads,
        )
        try:
            tree = await reconstructor.reconstruct(
                correlated.details.output_uris(), correlated.metadata.all_pages
            )
        except Exception as e:
            return _stage_error(PipelineStage.RECONSTRUCT, e)
        return {
            "tree": tree,
            "current_stage": PipelineStage.WRITE,
        }

    async def _node_write(self, state: ProcessState) -> dict[str, Any]:
        """Write the translated pages to the destination library."""
        metadata = state["correlated"].metadata
        self._report_progress(
            "write", "Writing translated pages", f"{metadata.target_lib}/{metadata.target_path}"
        )
        writer = HierarchicalWriter(self.clients, self.settings.platform, self.settings.rate_limit)
        try:
            report = await writer.write_tree(
                state["tree"], metadata.target_lib, metadata.target_path
            )
        except Exception as e:
            return _stage_error(PipelineStage.WRITE, e)
        return {
            "report": report,
            "current_stage": PipelineStage.NOTIFY,
        }

    async def _node_notify(self, state: ProcessState) -> dict[str, Any]:
        """Email the requesters."""
        metadata = state["correlated"].metadata
        self._report_progress("notify", "Sending notifications")
        notified = await send_completion_notification(
            self.services.email,
            metadata.notify_addrs,
            metadata.lib,
            metadata.id,
            metadata.target_lib,
            metadata.target_path,
            self.settings.platform,
            self.settings.notification,
        )
        return {
            "notified": notified,
            "current_stage": PipelineStage.COMPLETE,
        }

    async def run(
        self,
        job_id: str,
        progress_callback: ProgressCallback = None,
    ) -> StageResult:
        """
        Run the workflow for one completed job.

        Args:
            job_id: Identifier of the completed translation job.
            progress_callback: Optional callback for progress updates.

        Returns:
            StageResult with the number of pages created on success.
        """
        self._progress_callback = progress_callback
        initial_state: ProcessState = {
            "job_id": job_id,
            "current_stage": PipelineStage.INIT,
            "failed_stage": None,
            "correlated": None,
            "tree": None,
            "report": None,
            "notified": False,
            "errors": [],
        }
        logger.info("Processing translated output of job %s", job_id)
        app = self._graph.compile()
        final_state = await app.ainvoke(initial_state)

        correlated = final_state.get("correlated")
        report = final_state.get("report")
        success = final_state["current_stage"] == PipelineStage.COMPLETE
        if not success:
            logger.error("Processing of job %s failed", job_id)
        return StageResult(
            success=success,
            stage=final_state.get("failed_stage") or final_state["current_stage"],
            errors=list(final_state.get("errors") or []),
            root_key=correlated.details.root_key if correlated else None,
            job_id=job_id,
            page_count=correlated.metadata.page_count if correlated else 0,
            pages_created=report.pages_created if report else 0,
            failed_subtrees=list(report.failed_subtrees) if report else [],
            notified=bool(final_state.get("notified")),
        )
