"""Error taxonomy shared by the pipeline, handlers and the HTTP layer.

Only model-backend errors (``RateLimited``, ``UpstreamError``) escape the
pipeline. ``IntegrationFailure`` is raised by integration clients and caught
by the handler that owns the integration.
"""

from __future__ import annotations


class KanaError(Exception):
    code = "KANA_ERROR"
    http_status = 500

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(message)


class RateLimited(KanaError):
    """The generative-language backend is throttling us."""

    code = "RATE_LIMIT"


class UpstreamError(KanaError):
    """Any other generative-language backend failure."""

    code = "API_ERROR"

    def __init__(self, message: str = "", status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class IntegrationFailure(KanaError):
    """Device, calendar, CLI or search integration failed."""

    code = "INTEGRATION_FAILURE"


class ValidationError(KanaError):
    """Request is missing a required field."""

    code = "VALIDATION_ERROR"
    http_status = 400


__all__ = ["KanaError", "RateLimited", "UpstreamError", "IntegrationFailure", "ValidationError"]
