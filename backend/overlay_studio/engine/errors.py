"""Error taxonomy for the overlay pipeline and upstream failure classification."""

from __future__ import annotations


class OverlayError(Exception):
    """Base class. ``status_code`` is the HTTP status the API answers with."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputValidationError(OverlayError):
    status_code = 400


class ConfigurationError(OverlayError):
    status_code = 500


class UpstreamAuthError(OverlayError):
    status_code = 401


class UpstreamRateLimitError(OverlayError):
    status_code = 429


class UpstreamModelUnavailable(OverlayError):
    status_code = 400


class GenerationFailed(OverlayError):
    status_code = 500


class ParseError(OverlayError):
    """Locate stage returned nothing that parses as a JSON object."""


class NoOverlayBrief(ParseError):
    """Locate stage JSON had no usable overlay brief."""


class NoImageReturned(OverlayError):
    """Synthesis stage response carried no inline image."""


class RequestCancelled(OverlayError):
    """Caller went away; raised at the next stage boundary."""

    status_code = 499


class UpstreamError(Exception):
    """Non-success answer from the generative API."""

    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(f"Upstream error ({status}): {message}")
        self.status = status
        self.upstream_message = message


_AUTH_HINTS = ("401", "unauth", "api key not valid", "api_key_invalid")
_RATE_HINTS = ("429", "resource_exhausted")
_NOT_FOUND_HINTS = ("404", "not_found")


def classify_failure(exc: BaseException) -> OverlayError:
    """Map any pipeline failure to the error the API reports.

    Input and configuration errors pass through. Everything else is matched
    on the upstream status when one is known, then on the message text.
    """
    if isinstance(exc, (InputValidationError, ConfigurationError, RequestCancelled)):
        return exc

    message = str(exc)
    lowered = message.lower()
    status = getattr(exc, "status", None)

    if status == 401 or any(h in lowered for h in _AUTH_HINTS):
        return UpstreamAuthError("API key is invalid or expired")
    if status == 429 or any(h in lowered for h in _RATE_HINTS):
        return UpstreamRateLimitError("Upstream rate limit exceeded, please retry later")
    if status == 404 or any(h in lowered for h in _NOT_FOUND_HINTS):
        return UpstreamModelUnavailable("Model unavailable or model name is wrong")
    return GenerationFailed(f"Generation failed: {message}")
