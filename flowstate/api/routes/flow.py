from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ...service import FlowService
from ..deps import get_service
from ..schemas import FlowRequest

router = APIRouter(prefix="/api/v1", tags=["flow"])


@router.post("/flow")
def flow_action(payload: FlowRequest, service: FlowService = Depends(get_service)) -> dict[str, Any]:
    result = service.dispatch(payload.action, payload.user_id, payload.data)
    return {"success": True, **result}
