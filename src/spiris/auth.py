import base64
import contextlib
import hashlib
import hmac
import json
import logging
import secrets
import time
import urllib.parse
from dataclasses import dataclass, field

from .errors import (
    AuthError,
    AuthExpiredError,
    InvalidGrantError,
    PermanentError,
    StateMismatchError,
)
from .executor import AsyncRetryingExecutor, RequestSpec, RetryingExecutor
from .tokens import DEFAULT_LIFETIME, AccessToken, issue
from .types import OAuth2Config, RetryPolicy

# Bytes of entropy behind the CSRF state and the PKCE verifier
STATE_BYTES = 32
VERIFIER_BYTES = 64


@dataclass(frozen=True)
class AuthorizationRequest:
    """One authorization-code flow. Keep it in memory only until the code is exchanged."""

    url: str
    state: str
    verifier: str = field(repr=False)

    # allow `url, state, verifier = handler.authorize_url()`
    def __iter__(self):
        return iter((self.url, self.state, self.verifier))


def pkce_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_state(expected: str, received: str | None) -> None:
    if not received or not hmac.compare_digest(expected, received):
        raise StateMismatchError("OAuth state does not match; possible CSRF, restart the flow")


def parse_callback(url: str) -> tuple[str, str]:
    """Return (code, state) from the redirect URL the browser landed on."""
    query = urllib.parse.parse_qs(urllib.parse.urlsplit(url.strip()).query)
    if "error" in query:
        desc = query.get("error_description", [""])[0]
        raise AuthError(f"authorization denied: {query['error'][0]} {desc}".strip())
    code = query.get("code", [""])[0]
    if not code:
        raise AuthError("redirect URL carries no authorization code")
    return code, query.get("state", [""])[0]


# ---------- shared flow logic (transport handled by subclasses) ----------


class _OAuth2Base:
    def __init__(
        self,
        config: OAuth2Config,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        log_level: int | None = None,
        **kwargs,
    ):
        """Initialize an OAuth2 handler.

        Args:
            config (OAuth2Config): client credentials and endpoints
            retry_policy (RetryPolicy | None): retries for transient token endpoint failures
            timeout (float): per-attempt timeout in seconds
            log_level (int | None): level for the "spiris" logger
            kwargs:
            - sleep: replacement for the backoff sleep function
            - clock: replacement for time.time
        """
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self._logger = logging.getLogger("spiris")
        if log_level is not None:
            self._logger.setLevel(log_level)
        self._clock = kwargs.get("clock") or time.time
        self._executor_kwargs = {
            "logger": self._logger,
            "sleep": kwargs.get("sleep"),
            "clock": self._clock,
        }

    def authorize_url(self, scopes=None) -> AuthorizationRequest:
        state = secrets.token_urlsafe(STATE_BYTES)
        verifier = secrets.token_urlsafe(VERIFIER_BYTES)
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "state": state,
            "code_challenge": pkce_challenge(verifier),
            "code_challenge_method": "S256",
            "scope": " ".join(scopes or self.config.scopes),
        }
        url = f"{self.config.auth_url}?{urllib.parse.urlencode(params)}"
        return AuthorizationRequest(url=url, state=state, verifier=verifier)

    def _basic_auth(self) -> str:
        raw = f"{self.config.client_id}:{self.config.client_secret}".encode()
        return "Basic " + base64.b64encode(raw).decode("ascii")

    def _token_spec(self, form: dict, previous_refresh: str | None = None) -> RequestSpec:
        return RequestSpec(
            method="POST",
            url=self.config.token_url,
            data=form,
            headers={"Authorization": self._basic_auth(), "Accept": "application/json"},
            authorized=False,
            decode=lambda resp: self._decode_token(resp, previous_refresh),
            label="token",
        )

    def _code_spec(self, code: str, verifier: str) -> RequestSpec:
        return self._token_spec(
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": verifier,
                "redirect_uri": self.config.redirect_uri,
            }
        )

    def _refresh_spec(self, refresh_value: str) -> RequestSpec:
        form = {"grant_type": "refresh_token", "refresh_token": refresh_value}
        return self._token_spec(form, previous_refresh=refresh_value)

    def _decode_token(self, response, previous_refresh: str | None) -> AccessToken:
        data = response.json()
        if not isinstance(data, dict) or not data.get("access_token"):
            raise ValueError("token response carries no access_token")
        return issue(
            access_token=data["access_token"],
            lifetime_seconds=float(data.get("expires_in") or DEFAULT_LIFETIME),
            # Servers that do not rotate refresh tokens omit them on refresh
            refresh_token=data.get("refresh_token") or previous_refresh,
            now=self._now(),
            token_type=(data.get("token_type") or "Bearer").capitalize(),
        )

    def _now(self) -> float:
        return self._clock()

    @staticmethod
    def _is_rejection(exc: PermanentError | AuthExpiredError) -> bool:
        status = exc.detail.status
        return status is not None and 400 <= status < 500  # noqa: PLR2004

    @staticmethod
    def _rejected(exc: PermanentError | AuthExpiredError) -> InvalidGrantError:
        error, description = "", ""
        with contextlib.suppress(ValueError, TypeError):
            body = json.loads(exc.detail.body or "{}")
            if isinstance(body, dict):
                error = str(body.get("error", ""))
                description = str(body.get("error_description", ""))
        message = f"token endpoint rejected the grant: {error or exc.detail.status}"
        if description:
            message += f" ({description})"
        return InvalidGrantError(message, error, description, exc.detail)


# ---------- requests ----------


class OAuth2Handler(_OAuth2Base):
    """Authorization-code + PKCE flow and token refresh over a requests.Session."""

    def __init__(self, config: OAuth2Config, session=None, **kwargs):
        super().__init__(config, **kwargs)
        if session is None:
            import requests  # noqa: PLC0415

            session = requests.Session()
            self._own_session = True
        else:
            self._own_session = False
        self.session = session
        self._executor = RetryingExecutor(self.retry_policy, **self._executor_kwargs)

    def close(self):
        if self._own_session:
            with contextlib.suppress(Exception):
                self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _send(self, spec: RequestSpec, token):
        return self.session.request(
            spec.method, spec.url, data=spec.data, headers=spec.headers, timeout=self.timeout
        )

    def _run(self, spec: RequestSpec) -> AccessToken:
        try:
            return self._executor.execute(spec, self._send)
        except (PermanentError, AuthExpiredError) as e:
            if self._is_rejection(e):
                raise self._rejected(e) from e
            raise

    def exchange_code(self, code: str, verifier: str) -> AccessToken:
        token = self._run(self._code_spec(code, verifier))
        self._logger.info("OAuth token obtained via authorization code")
        return token

    def refresh_token(self, refresh_value: str) -> AccessToken:
        token = self._run(self._refresh_spec(refresh_value))
        self._logger.info("OAuth token refreshed")
        return token


# ---------- httpx (async) ----------


class AsyncOAuth2Handler(_OAuth2Base):
    """asyncio flavour of OAuth2Handler over an httpx.AsyncClient."""

    def __init__(self, config: OAuth2Config, client=None, **kwargs):
        super().__init__(config, **kwargs)
        if client is None:
            import httpx  # noqa: PLC0415

            client = httpx.AsyncClient()
            self._own_client = True
        else:
            self._own_client = False
        self.client = client
        self._executor = AsyncRetryingExecutor(self.retry_policy, **self._executor_kwargs)

    async def aclose(self):
        if self._own_client:
            with contextlib.suppress(Exception):
                await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    async def _send(self, spec: RequestSpec, token):
        return await self.client.request(
            spec.method, spec.url, data=spec.data, headers=spec.headers, timeout=self.timeout
        )

    async def _run(self, spec: RequestSpec) -> AccessToken:
        try:
            return await self._executor.execute(spec, self._send)
        except (PermanentError, AuthExpiredError) as e:
            if self._is_rejection(e):
                raise self._rejected(e) from e
            raise

    async def exchange_code(self, code: str, verifier: str) -> AccessToken:
        token = await self._run(self._code_spec(code, verifier))
        self._logger.info("OAuth token obtained via authorization code")
        return token

    async def refresh_token(self, refresh_value: str) -> AccessToken:
        token = await self._run(self._refresh_spec(refresh_value))
        self._logger.info("OAuth token refreshed")
        return token
