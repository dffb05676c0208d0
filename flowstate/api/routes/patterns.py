from __future__ import annotations

from fastapi import APIRouter, Depends

from ...errors import NotFoundError
from ...service import FlowService
from ..deps import get_service
from ..schemas import PatternOut

router = APIRouter(prefix="/api/v1", tags=["patterns"])


@router.get("/patterns/{user_id}", response_model=PatternOut)
def get_pattern(user_id: str, service: FlowService = Depends(get_service)) -> PatternOut:
    pattern = service.db.get_pattern(user_id)
    if pattern is None:
        raise NotFoundError(f"no flow pattern for {user_id}")
    return PatternOut(**pattern.to_dict())
