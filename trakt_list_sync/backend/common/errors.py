from __future__ import annotations

from typing import Optional


class TraktSyncError(Exception):
    """Base for all trakt-list-sync exceptions."""


class ConfigError(TraktSyncError):
    """Missing credential or invalid setting."""


class TaskError(TraktSyncError):
    """Periodic runner misuse."""


class NetworkError(TraktSyncError):
    """Network/HTTP layer issues."""


class ApiError(NetworkError):
    """Structured failure of a single Trakt API call."""

    kind = "client"
    retryable = False

    def __init__(
        self,
        status: int = 0,
        code: Optional[str] = None,
        description: Optional[str] = None,
        *,
        retry_after: float = 0.0,
    ) -> None:
        self.status = status
        self.code = code or None
        self.description = description or None
        self.retry_after = max(0.0, float(retry_after or 0.0))
        super().__init__(self._render())

    def _render(self) -> str:
        if self.code:
            if self.description:
                return f"API error: {self.code} - {self.description}"
            return f"API error: {self.code}"
        if self.status:
            detail = f" ({self.description})" if self.description else ""
            return f"API error: status {self.status}{detail}"
        return f"API error: {self.description or 'unknown failure'}"


class TransientNetworkError(ApiError):
    kind = "transient"
    retryable = True


class RateLimitedError(ApiError):
    kind = "rate_limited"
    retryable = True


class ServerError(ApiError):
    kind = "server"
    retryable = True


class ClientError(ApiError):
    kind = "client"
    retryable = False


class BadRequest(ClientError): ...
class Unauthorized(ClientError): ...
class Forbidden(ClientError): ...
class NotFound(ClientError): ...


class AuthError(TraktSyncError):
    """Terminal authentication failure; the user has to authenticate again."""


class AuthDenied(AuthError):
    pass


class AuthExpired(AuthError):
    pass


class AuthTimedOut(AuthError):
    pass


class MissingRefreshToken(AuthError):
    pass


def error_for_status(
    status: int,
    code: Optional[str] = None,
    description: Optional[str] = None,
    *,
    retry_after: float = 0.0,
) -> ApiError:
    if status == 400: cls = BadRequest
    elif status == 401: cls = Unauthorized
    elif status == 403: cls = Forbidden
    elif status == 404: cls = NotFound
    elif status == 429: cls = RateLimitedError
    elif 500 <= status < 600: cls = ServerError
    else: cls = ClientError

    return cls(status, code, description, retry_after=retry_after)
