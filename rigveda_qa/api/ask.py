# =============================================================================
# Ask API — RigVeda Question Answering Endpoints
# =============================================================================
#
#   POST /ask         — run the whole pipeline, return the answer as JSON
#   POST /ask/stream  — same pipeline, progress pushed as Server-Sent Events:
#                         event: progress   (one per ProgressEvent)
#                         event: result     (the AskResponse payload)
#                         event: done
#
# Both are thin: request validation, error mapping, response mapping. The
# pipeline itself lives in agents/orchestrator.py.
#
# Error mapping:
#   - ValueError (missing API key, bad configuration) → 503
#   - anything else escaping the orchestrator        → 502
#   Off-topic questions, empty evidence and generation failures are NOT
#   errors: they come back as 200 with success=false.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import asdict, is_dataclass

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from rigveda_qa.agents.orchestrator import QueryOrchestrator
from rigveda_qa.agents.types import ProgressEvent, QueryResult, TraceStep
from rigveda_qa.models.requests import AskRequest
from rigveda_qa.models.responses import AskResponse, TraceEntry, VerseSource
from rigveda_qa.utils.sse import format_sse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Question Answering"])


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------

_orchestrator: QueryOrchestrator | None = None


def get_orchestrator() -> QueryOrchestrator:
    """
    Shared orchestrator, built on first use.

    Raises:
        HTTPException(503): If the LLM provider cannot be configured.
    """
    global _orchestrator
    if _orchestrator is None:
        try:
            _orchestrator = QueryOrchestrator()
        except ValueError as e:
            logger.error("Configuration error: %s", e)
            raise HTTPException(
                status_code=503,
                detail=f"Service configuration error: {e}",
            ) from e
    return _orchestrator


# ---------------------------------------------------------------------------
# POST /ask
# ---------------------------------------------------------------------------


@router.post(
    "/ask",
    response_model=AskResponse,
    summary="Ask a question about the RigVeda",
    description=(
        "Searches the RigVeda corpus with iterative Sanskrit search terms, "
        "keeps the verses judged relevant, translates them, and generates "
        "an answer grounded in those verses."
    ),
)
async def ask_endpoint(
    request: AskRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
) -> AskResponse:
    logger.info("Ask request: question='%s'", request.question[:80])

    try:
        result = await orchestrator.process_query(request.question)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e
    except Exception as e:
        logger.exception("Orchestrator failed: %s", e)
        raise HTTPException(
            status_code=502,
            detail=f"LLM service error: {e}",
        ) from e

    return _to_response(request.question, result)


# ---------------------------------------------------------------------------
# POST /ask/stream
# ---------------------------------------------------------------------------


@router.post(
    "/ask/stream",
    summary="Ask a question about the RigVeda (SSE stream)",
    description="Streams progress events while the pipeline runs. Events: progress, result, done, error.",
)
async def ask_stream_endpoint(
    request: AskRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    logger.info("Ask stream request: question='%s'", request.question[:80])
    return StreamingResponse(
        _sse_events(orchestrator, request.question),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


async def _sse_events(orchestrator: QueryOrchestrator, question: str) -> AsyncIterator[str]:
    """
    Run the pipeline in a task and relay its progress events.

    If the client goes away, the generator is closed; the cancel event
    stops answer generation and the task is cancelled.
    """
    queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
    cancel_event = asyncio.Event()
    task = asyncio.create_task(
        orchestrator.process_query(question, queue.put_nowait, cancel_event)
    )

    getter: asyncio.Future | None = None
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield format_sse("progress", _event_payload(getter.result()))
                continue
            getter.cancel()
            break

        while not queue.empty():
            yield format_sse("progress", _event_payload(queue.get_nowait()))

        try:
            result = task.result()
        except Exception as e:
            logger.exception("SSE pipeline failed")
            yield format_sse("error", {"message": str(e)})
            return

        response = _to_response(question, result)
        yield format_sse("result", response.model_dump(mode="json"))
        yield format_sse("done", {"success": result.success})
    finally:
        if getter is not None and not getter.done():
            getter.cancel()
        if not task.done():
            cancel_event.set()
            task.cancel()


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _to_response(question: str, result: QueryResult) -> AskResponse:
    return AskResponse(
        answer=result.final_answer,
        success=result.success,
        question=question,
        verses=[VerseSource.model_validate(v) for v in result.verses],
        trace=[_trace_entry(step) for step in result.trace],
    )


def _trace_entry(step: TraceStep) -> TraceEntry:
    result = step.result
    if is_dataclass(result) and not isinstance(result, type):
        result = asdict(result)
    elif not isinstance(result, dict):
        result = {"value": result}
    return TraceEntry(tool=step.tool, result=result)


def _event_payload(event: ProgressEvent) -> dict:
    return {"kind": event.kind, "message": event.message, "data": event.data}
