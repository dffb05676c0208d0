from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ...service import FlowService
from ..deps import get_service
from ..schemas import SessionOut

router = APIRouter(prefix="/api/v1", tags=["sessions"])


@router.get("/sessions", response_model=list[SessionOut])
def list_sessions(
    user_id: str,
    limit: int = Query(default=30, ge=1, le=2000),
    service: FlowService = Depends(get_service),
) -> list[SessionOut]:
    items = service.sessions.list_sessions(user_id, limit=limit)
    return [SessionOut(**item.to_dict()) for item in items]


@router.get("/sessions/{session_id}", response_model=SessionOut)
def get_session(session_id: int, service: FlowService = Depends(get_service)) -> SessionOut:
    return SessionOut(**service.sessions.get(session_id).to_dict())
