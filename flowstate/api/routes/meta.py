from __future__ import annotations

import platform

from fastapi import APIRouter, Depends

from ... import __version__
from ...service import ACTIONS, FlowService
from ..deps import get_service
from ..schemas import MetaOut

router = APIRouter(prefix="/api/v1", tags=["system"])


@router.get("/meta", response_model=MetaOut)
def meta(service: FlowService = Depends(get_service)) -> MetaOut:
    return MetaOut(
        app="FlowState",
        version=__version__,
        db_path=str(service.db.db_path),
        platform=platform.platform(),
        actions=list(ACTIONS),
    )
