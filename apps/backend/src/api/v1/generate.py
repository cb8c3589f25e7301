"""Streaming setlist generation endpoints.

Event JSON schema (sent in `data:` lines), one object per event:
  {"event": "started", "providers": [...]}
  {"event": "provider-started", "provider": "..."}
  {"event": "primary-result" | "alternative-result", "provider": "...", "tracks": [...]}
  {"event": "provider-failed", "provider": "...", "error": "..."}
  {"event": "track-enriched", "provider": "...", "index": n, "media": {...},
   "best_effort": bool}
  {"event": "complete", "summary": {...}} | {"event": "all-failed", "errors": [...]}

Idle periods are filled with `: heartbeat` comment lines.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import APIRouter, Query
from fastapi.exceptions import RequestValidationError
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from core.config import get_settings
from dependencies.services import Orchestrator
from schemas.generation import (
    EnergyRange,
    GenerationConstraints,
    GenerationRequest,
    ProviderId,
)
from schemas.streaming import render_sse
from services.ai.model_factory import configured_providers
from services.ai.race import RaceOrchestrator


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _with_default_roster(request: GenerationRequest, roster_given: bool) -> GenerationRequest:
    """Race only configured providers unless the caller named a roster."""
    if roster_given:
        return request
    configured = configured_providers()
    if not configured:
        return request
    return request.model_copy(update={"providers": tuple(configured)})


async def _event_stream(
    orchestrator: RaceOrchestrator, request: GenerationRequest
) -> AsyncIterator[str]:
    heartbeat = get_settings().STREAM_HEARTBEAT_SECONDS or None
    events = orchestrator.stream(request, heartbeat_interval=heartbeat)
    try:
        async for event in events:
            yield render_sse(event)
    finally:
        # Client disconnect lands here; closing cancels the provider tasks
        await events.aclose()


def _stream_response(
    orchestrator: RaceOrchestrator, request: GenerationRequest
) -> StreamingResponse:
    logger.info(
        "Starting generation race: providers=%s track_count=%d",
        list(request.providers),
        request.track_count,
    )
    return StreamingResponse(
        _event_stream(orchestrator, request),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/generate-stream")
async def generate_stream(
    payload: GenerationRequest, orchestrator: Orchestrator
) -> StreamingResponse:
    """Race the providers and stream progress as Server-Sent Events."""
    request = _with_default_roster(payload, "providers" in payload.model_fields_set)
    return _stream_response(orchestrator, request)


@router.get("/generate-stream")
async def generate_stream_get(
    orchestrator: Orchestrator,
    prompt: Annotated[str, Query(min_length=1, max_length=2000)],
    track_count: Annotated[int, Query(ge=1, le=50)] = 8,
    energy_min: Annotated[int, Query(ge=1, le=100)] = 40,
    energy_max: Annotated[int, Query(ge=1, le=100)] = 80,
    providers: Annotated[list[ProviderId] | None, Query()] = None,
) -> StreamingResponse:
    """Query-string variant for EventSource clients."""
    try:
        request = GenerationRequest(
            prompt=prompt,
            track_count=track_count,
            constraints=GenerationConstraints(
                energy_range=EnergyRange(min=energy_min, max=energy_max)
            ),
            **({"providers": tuple(providers)} if providers else {}),
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e
    return _stream_response(orchestrator, _with_default_roster(request, bool(providers)))
