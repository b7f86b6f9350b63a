"""
Entry points for requests, queue messages and job completion events.

- enqueue_request: validate a translation request and queue it
- handle_queue_event: run the start-translation workflow for a queued request
- handle_job_event: run the process-translated workflow for a completed job

Request-facing entry points answer with HTTP-style response dicts
({statusCode, headers, body}); job events only log their outcome.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from polyglot_engine.config import Settings
from polyglot_engine.errors import ValidationError
from polyglot_engine.library.paths import parse_library_url
from polyglot_engine.models import TranslationRequest
from polyglot_engine.pipeline import (
    ProcessTranslatedPipeline,
    ProgressCallback,
    StageResult,
    StartTranslationPipeline,
)
from polyglot_engine.services.base import Services, WorkQueue
from polyglot_engine.translation.submitter import LANGUAGE_CODE_PATTERN

logger = logging.getLogger(__name__)


def http_response(status: int, msg: Any) -> dict[str, Any]:
    """Build an HTTP-style response."""
    return {
        "statusCode": str(status),
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"status": status, "msg": msg}),
    }


def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_request_params(
    params: Any, base_domain: str = "libretexts.org"
) -> TranslationRequest:
    """
    Validate translation request parameters.

    Args:
        params: Query parameters with url, targetpath, language and an optional
            comma-separated notify list.
        base_domain: Domain the libraries are served under.

    Returns:
        The validated request.

    Raises:
        ValidationError: With every problem found.
    """
    if not isinstance(params, dict):
        raise ValidationError(
            "Required parameters are missing.", errors=["Invalid parameters object provided."]
        )

    errors: list[str] = []
    if not _non_empty(params.get("url")):
        errors.append("URL not provided or invalid form.")
    if not _non_empty(params.get("targetpath")):
        errors.append("Target path not provided or invalid form.")
    language = params.get("language")
    if not _non_empty(language) or not LANGUAGE_CODE_PATTERN.match(language.strip()):
        errors.append("Language code not provided or invalid.")

    notify_addrs: list[str] = []
    notify = params.get("notify")
    if isinstance(notify, str) and notify.strip():
        for address in notify.split(","):
            trimmed = address.strip()
            if "@" in trimmed:
                notify_addrs.append(trimmed)
            else:
                errors.append(f"Provided address {address} is invalid.")

    source = parse_library_url(params.get("url"), base_domain)
    target = parse_library_url(params.get("targetpath"), base_domain)
    if source is None:
        errors.append("Invalid URL to translate.")
    if target is None:
        errors.append("Invalid target URL.")

    if errors:
        for error in errors:
            logger.warning("Request validation failed: %s", error)
        raise ValidationError("Required parameters are missing.", errors=errors)

    lib, path = source
    target_lib, target_path = target
    return TranslationRequest(
        lib=lib,
        path=path,
        target_lib=target_lib,
        target_path=target_path,
        language=language.strip(),
        notify_addrs=notify_addrs,
    )


async def enqueue_request(
    params: Any, queue: WorkQueue | None, settings: Settings
) -> dict[str, Any]:
    """
    Validate a request and push it to the processing queue.

    Returns:
        HTTP-style response: 400 on validation errors, 500 if queueing
        failed, 200 once queued.
    """
    try:
        request = validate_request_params(params, settings.platform.base_domain)
    except ValidationError as e:
        return http_response(400, {"msg": f"Polyglot Engine: {e}", "errors": e.errors})

    if queue is None:
        logger.error("No work queue configured")
        return http_response(500, "Polyglot Engine: Unknown internal error occurred.")

    message = {"originalParams": params, **request.to_dict()}
    try:
        await queue.send_message(json.dumps(message))
    except Exception as e:
        logger.error("Could not queue request for %s/%s: %s", request.lib, request.path, e)
        return http_response(500, "Polyglot Engine: Unknown internal error occurred.")

    logger.info(
        "Queued translation of %s/%s into %s", request.lib, request.path, request.language
    )
    return http_response(200, "Polyglot Engine: Translation request successfully queued.")


@asynccontextmanager
async def _http_client(
    settings: Settings, http: httpx.AsyncClient | None
) -> AsyncIterator[httpx.AsyncClient]:
    if http is not None:
        yield http
        return
    async with httpx.AsyncClient(timeout=settings.platform.timeout_seconds) as client:
        yield client


async def run_start_translation(
    request: TranslationRequest,
    settings: Settings,
    services: Services,
    http: httpx.AsyncClient | None = None,
    progress_callback: ProgressCallback = None,
) -> StageResult:
    """Run the start-translation workflow for a validated request."""
    async with _http_client(settings, http) as client:
        pipeline = StartTranslationPipeline(settings, services, client)
        return await pipeline.run(request, progress_callback=progress_callback)


async def run_process_translated(
    job_id: str,
    settings: Settings,
    services: Services,
    http: httpx.AsyncClient | None = None,
    progress_callback: ProgressCallback = None,
) -> StageResult:
    """Run the process-translated workflow for a completed job."""
    async with _http_client(settings, http) as client:
        pipeline = ProcessTranslatedPipeline(settings, services, client)
        return await pipeline.run(job_id, progress_callback=progress_callback)


async def handle_queue_event(
    event: Any,
    settings: Settings,
    services: Services,
    http: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """
    Start a translation from a queue event.

    The message is removed from the queue before processing starts, so a
    failing text is not retried indefinitely. A message that cannot be parsed
    is left in the queue.

    Returns:
        HTTP-style response describing the outcome.
    """
    records = event.get("Records") if isinstance(event, dict) else None
    if not records:
        logger.error("Queue event information is invalid or missing")
        return http_response(400, "Polyglot Engine: Event information is invalid or missing.")

    record = records[0]
    try:
        request = TranslationRequest.from_dict(json.loads(record["body"]))
    except (KeyError, TypeError, ValueError) as e:
        logger.error("Error parsing queue message: %s", e)
        return http_response(400, "Polyglot Engine: Queue message is malformed.")

    logger.info("Translating %s/%s", request.lib, request.path)
    if services.queue is None:
        logger.error("No work queue configured, cannot remove message")
        return http_response(500, "Polyglot Engine: Unknown internal error occurred.")
    try:
        await services.queue.delete_message(record["receiptHandle"])
    except Exception as e:
        logger.error("Error deleting queue message: %s", e)
        return http_response(500, "Polyglot Engine: Unknown internal error occurred.")

    result = await run_start_translation(request, settings, services, http)
    if not result.success:
        logger.error(
            "Translation of %s/%s failed at %s", request.lib, request.path, result.stage.value
        )
        return http_response(500, f"Polyglot Engine: {result.message}")
    return http_response(
        200,
        {
            "msg": "Polyglot Engine: Content translation will start shortly.",
            "jobId": result.job_id,
            "rootKey": result.root_key,
            "pageCount": result.page_count,
        },
    )


async def handle_job_event(
    event: Any,
    settings: Settings,
    services: Services,
    http: httpx.AsyncClient | None = None,
) -> StageResult | None:
    """
    Process a translation job state-change event.

    Returns:
        The workflow result, or None if the event is not a completed job.
    """
    detail = event.get("detail") if isinstance(event, dict) else None
    if not isinstance(detail, dict) or detail.get("jobStatus") != "COMPLETED":
        logger.error("Event information is invalid, missing or not a completed job")
        return None
    job_id = detail.get("jobId")
    if not _non_empty(job_id):
        logger.error("Initiating job identifier not found or invalid")
        return None

    result = await run_process_translated(job_id, settings, services, http)
    if result.success:
        logger.info(
            "Job %s complete: %d of %d pages written",
            job_id,
            result.pages_created,
            result.page_count,
        )
    return result
