from __future__ import annotations

from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ...config import Settings, get_settings
from ...domain.chat_models import ChatLogEntry, ChatRequest, ChatTurn, ErrorResponse
from ...infrastructure.chat_store import StoreError, get_chat_store
from ...services.llm_client import UpstreamClient
from ...services.persistence import PersistenceError, UnknownProjectError, persist_completed_stream, record_turn
from ...services.prompts import select_system_prompt
from ...services.relay import RelayError, StreamSession, relay
from ..deps import get_upstream_client


router = APIRouter(prefix="/chat", tags=["chat"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
}


def _encode(session: StreamSession) -> Iterator[bytes]:
    for fragment in session:
        yield fragment.encode("utf-8")


def _finish(session: StreamSession, req: ChatRequest, settings: Settings) -> None:
    # Runs after the response ends, including when the client disconnected
    session.close()
    if req.persist:
        persist_completed_stream(session, req, settings)


@router.post(
    "",
    response_class=StreamingResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def chat(
    req: ChatRequest,
    settings: Settings = Depends(get_settings),
    client: UpstreamClient = Depends(get_upstream_client),
):
    """Stream the assistant reply for one conversation turn as UTF-8 text.

    The upstream request is opened before any bytes are sent, so failures up
    to the first fragment come back as ``{"error": ...}`` with status 500.
    """
    system_prompt = select_system_prompt(req.mode, req.user_role, req.company_context)
    session = relay(req.messages, system_prompt, client)
    try:
        session.start()
    except RelayError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message) from exc
    return StreamingResponse(
        _encode(session),
        media_type="text/plain; charset=utf-8",
        headers=STREAM_HEADERS,
        background=BackgroundTask(_finish, session, req, settings),
    )


@router.post(
    "/history",
    response_model=List[ChatLogEntry],
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def save_history(turn: ChatTurn, response: Response, settings: Settings = Depends(get_settings)) -> List[ChatLogEntry]:
    """Append a finished turn to the chat log; 503 when the store keeps failing."""
    try:
        result = record_turn(turn, settings)
    except UnknownProjectError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if result.project_id:
        response.headers["X-Project-Id"] = result.project_id
    return result.entries


@router.get("/history", response_model=List[ChatLogEntry], responses={503: {"model": ErrorResponse}})
def list_history(
    limit: int = Query(100, ge=1, le=1000),
    project_id: Optional[str] = Query(None),
) -> List[ChatLogEntry]:
    try:
        return get_chat_store().list_entries(limit=limit, project_id=project_id)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
