from dataclasses import dataclass

# Body snippets kept on errors are truncated to this many characters
BODY_SNIPPET_LIMIT = 512


@dataclass(frozen=True)
class ErrorDetail:
    """Structured context for a failed physical attempt."""

    method: str = ""
    endpoint: str = ""
    status: int | None = None
    body: str = ""
    message: str = ""
    retry_after: float | None = None

    def __str__(self) -> str:
        parts = [f"{self.method} {self.endpoint}".strip()]
        if self.status is not None:
            parts.append(f"status={self.status}")
        parts.append(self.message)
        return " ".join(p for p in parts if p) or "no detail"


def snippet(body: str | bytes | None) -> str:
    if body is None:
        return ""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    return str(body)[:BODY_SNIPPET_LIMIT]


class SpirisError(Exception):
    """Root of every error raised by this package."""


# ---------- OAuth2 ----------


class AuthError(SpirisError):
    kind = "auth"


class InvalidGrantError(AuthError):
    """The token endpoint rejected the grant; the user must re-authenticate."""

    kind = "invalid_grant"

    def __init__(self, message: str, error: str = "", description: str = "", detail=None):
        super().__init__(message)
        self.error = error
        self.description = description
        self.detail = detail or ErrorDetail(message=message)


class NoRefreshTokenError(AuthError):
    kind = "no_refresh_token"


class StateMismatchError(AuthError):
    kind = "state_mismatch"


# ---------- request execution ----------


class ClientError(SpirisError):
    kind = "client"

    def __init__(self, message: str, detail: ErrorDetail | None = None):
        super().__init__(message)
        self.detail = detail or ErrorDetail(message=message)


class PermanentError(ClientError):
    """Request rejected in a way an identical retry cannot fix."""

    kind = "permanent"

    @property
    def status(self) -> int | None:
        return self.detail.status


class ExhaustedError(ClientError):
    """Transient failures persisted through every allowed attempt."""

    kind = "exhausted"

    def __init__(self, message: str, detail: ErrorDetail | None = None, attempts: int = 0):
        super().__init__(message, detail)
        self.attempts = attempts


class AuthExpiredError(ClientError):
    """The access token is expired locally or was rejected by the server (401)."""

    kind = "auth_expired"


class ConfigurationError(ClientError, ValueError):
    kind = "configuration"
