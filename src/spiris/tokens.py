import json
import threading
import time
from dataclasses import asdict, dataclass

from .errors import NoRefreshTokenError

# Lifetime the token endpoint declares when it omits expires_in
DEFAULT_LIFETIME = 3600


@dataclass(frozen=True)
class AccessToken:
    """Immutable bearer credential. Refreshing produces a new instance."""

    access_token: str
    expires_at: float
    refresh_token: str | None = None
    token_type: str = "Bearer"

    def is_expired(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now >= self.expires_at

    def seconds_left(self, now: float | None = None) -> float:
        now = time.time() if now is None else now
        return self.expires_at - now

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}".strip()

    # Secrets stay out of logs and tracebacks
    def __repr__(self) -> str:
        return (
            f"AccessToken(expires_at={self.expires_at!r}, "
            f"refresh_token={'<set>' if self.refresh_token else None})"
        )

    # ---------- persistence helpers; storage itself is the caller's concern ----------
    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AccessToken":
        return cls(
            access_token=data["access_token"],
            expires_at=float(data["expires_at"]),
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or "Bearer",
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, raw: str) -> "AccessToken":
        return cls.from_dict(json.loads(raw))


def issue(
    access_token: str,
    lifetime_seconds: float = DEFAULT_LIFETIME,
    refresh_token: str | None = None,
    now: float | None = None,
    skew: float = 0.0,
    token_type: str = "Bearer",
) -> AccessToken:
    """Create a token expiring ``lifetime_seconds`` after ``now``.

    ``skew`` shortens the lifetime for servers that expire tokens a little early.
    It defaults to 0 so that expires_at is exactly issuance + declared lifetime.
    """
    now = time.time() if now is None else now
    return AccessToken(
        access_token=access_token,
        expires_at=now + float(lifetime_seconds) - skew,
        refresh_token=refresh_token,
        token_type=token_type,
    )


def refresh(handler, token: AccessToken) -> AccessToken:
    """Renew ``token`` through a sync OAuth2 handler. Never touches the network without
    a refresh credential."""
    if not token.can_refresh:
        raise NoRefreshTokenError("token has no refresh credential; re-authenticate")
    return handler.refresh_token(token.refresh_token)


async def arefresh(handler, token: AccessToken) -> AccessToken:
    if not token.can_refresh:
        raise NoRefreshTokenError("token has no refresh credential; re-authenticate")
    return await handler.refresh_token(token.refresh_token)


class TokenCell:
    """Shared handle to the current token.

    The only mutation is replacing the whole value, under a lock held for the swap
    alone (never across I/O), so any reader sees either the old or the new token.
    A threading lock is used for asyncio callers too: nothing awaits while holding it.
    """

    def __init__(self, token: AccessToken):
        self._token = token
        self._lock = threading.Lock()

    def get(self) -> AccessToken:
        with self._lock:
            return self._token

    def swap(self, new: AccessToken) -> AccessToken:
        with self._lock:
            old, self._token = self._token, new
            return old

    def replace_if(self, expected: AccessToken, new: AccessToken) -> AccessToken:
        """Install ``new`` only if ``expected`` is still current; return whatever is current."""
        with self._lock:
            if self._token is expected:
                self._token = new
            return self._token
