"""Error taxonomy shared by the session manager, analyzer and HTTP layer."""

from __future__ import annotations


class FlowError(Exception):
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(FlowError):
    http_status = 404


class InvalidStateError(FlowError):
    http_status = 400


class InvalidArgumentError(FlowError):
    http_status = 400


class UpstreamError(FlowError):
    """Storage or text-generation collaborator failed or timed out."""

    http_status = 502
