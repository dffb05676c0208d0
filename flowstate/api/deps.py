from __future__ import annotations

from fastapi import Request

from ..service import FlowService


def get_service(request: Request) -> FlowService:
    return request.app.state.flow_service
