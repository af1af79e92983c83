import contextlib
import dataclasses
import logging
import time
import urllib.parse
from typing import Any

from .endpoints import (
    ArticlesEndpoint,
    AsyncArticlesEndpoint,
    AsyncCustomersEndpoint,
    AsyncInvoicesEndpoint,
    CustomersEndpoint,
    InvoicesEndpoint,
)
from .errors import AuthError, AuthExpiredError, ConfigurationError
from .executor import AsyncRetryingExecutor, RequestSpec, RetryingExecutor
from .tokens import AccessToken, TokenCell, arefresh, refresh
from .types import ClientConfig

# ClientConfig fields that may be overridden by keyword on the clients
_CONFIG_KEYS = ("base_url", "timeout", "retry_policy", "tracing_enabled", "user_agent")


# ---------- shared state and request building (I/O handled by subclasses) ----------


class _ClientBase:
    def __init__(
        self,
        token: AccessToken,
        config: ClientConfig | None = None,
        oauth=None,
        log_level: int | None = None,
        **kwargs,
    ):
        """Initialize a client.

        Args:
            token (AccessToken): initial access token
            config (ClientConfig | None): shared, read-only configuration
            oauth (OAuth2Handler | AsyncOAuth2Handler | None): used to refresh the token
                once when a request finds it expired
            log_level (int | None): level for the "spiris" logger
            kwargs:
            - base_url, timeout, retry_policy, tracing_enabled, user_agent: override the
              matching ClientConfig fields
            - sleep: replacement for the backoff sleep function
            - clock: replacement for time.time

        Raises:
            ConfigurationError: if the configuration or retry policy is invalid
        """
        if not isinstance(token, AccessToken):
            raise ConfigurationError("token must be an AccessToken")
        overrides = {k: kwargs[k] for k in _CONFIG_KEYS if kwargs.get(k) is not None}
        try:
            config = dataclasses.replace(config or ClientConfig(), **overrides)
        except TypeError as e:
            raise ConfigurationError(str(e)) from e
        self.config = config
        self.oauth = oauth
        self._tokens = TokenCell(token)
        self._clock = kwargs.get("clock") or time.time
        self._logger = logging.getLogger("spiris")
        if log_level is not None:
            with contextlib.suppress(Exception):
                self._logger.setLevel(log_level)
        self._executor_kwargs = {
            "tracing": config.tracing_enabled,
            "logger": self._logger,
            "sleep": kwargs.get("sleep"),
            "clock": self._clock,
        }

    def _now(self) -> float:
        return self._clock()

    # ---------- token handle ----------
    @property
    def token(self) -> AccessToken:
        return self._tokens.get()

    def set_token(self, token: AccessToken) -> AccessToken:
        """Install a new token (e.g. after a fresh login); returns the previous one."""
        return self._tokens.swap(token)

    def is_token_expired(self) -> bool:
        return self._tokens.get().is_expired(self._now())

    def _install(self, expected: AccessToken, new: AccessToken) -> AccessToken:
        current = self._tokens.replace_if(expected, new)
        if current is not new:
            self._logger.debug("token already replaced by a concurrent refresh; keeping it")
        return current

    def _refreshed_elsewhere(self, started_with: AccessToken, current: AccessToken) -> bool:
        return current is not started_with and not current.is_expired(self._now())

    def _can_refresh(self, token: AccessToken) -> bool:
        return self.oauth is not None and token.can_refresh

    def _lost_refresh_race(self, started_with: AccessToken) -> AccessToken | None:
        # a rejected refresh is harmless when a concurrent caller already rotated the token
        current = self._tokens.get()
        if self._refreshed_elsewhere(started_with, current):
            self._logger.debug("refresh rejected after a concurrent refresh; using its token")
            return current
        return None

    # ---------- request building ----------
    def _spec(self, method: str, path: str, params=None, json=None, decode=None) -> RequestSpec:
        path = path.lstrip("/")
        return RequestSpec(
            method=method,
            url=urllib.parse.urljoin(self.config.base_url, path),
            params=params or None,
            json=json,
            headers={"Accept": "application/json", "User-Agent": self.config.user_agent},
            decode=decode,
            label=path,
        )

    @staticmethod
    def _headers(spec: RequestSpec, token: AccessToken | None) -> dict:
        headers = dict(spec.headers or {})
        if token is not None:
            headers["Authorization"] = token.authorization_header()
        return headers


# ---------- requests (threads) ----------


class Client(_ClientBase):
    """Spiris API client over a requests.Session.

    Safe to share between threads: each call runs its own retry loop, and the token is
    only ever replaced as a whole.
    """

    def __init__(
        self, token: AccessToken, config: ClientConfig | None = None, session=None, **kwargs
    ):
        super().__init__(token, config, **kwargs)
        if session is None:
            import requests  # noqa: PLC0415

            session = requests.Session()
            self._own_session = True
        else:
            self._own_session = False
        self.session = session
        self._executor = RetryingExecutor(self.config.retry_policy, **self._executor_kwargs)

    def close(self):
        if self._own_session:
            with contextlib.suppress(Exception):
                self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _send(self, spec: RequestSpec, token: AccessToken | None):
        return self.session.request(
            spec.method,
            spec.url,
            params=spec.params,
            json=spec.json,
            headers=self._headers(spec, token),
            timeout=self.config.timeout,
        )

    def refresh(self) -> AccessToken:
        """Refresh the current token through the OAuth2 handler and install it."""
        current = self._tokens.get()
        if self.oauth is None and current.can_refresh:
            raise ConfigurationError("client has no OAuth2 handler to refresh with")
        return self._refresh_from(current)

    def _refresh_from(self, current: AccessToken) -> AccessToken:
        try:
            new = refresh(self.oauth, current)
        except AuthError:
            winner = self._lost_refresh_race(current)
            if winner is None:
                raise
            return winner
        return self._install(current, new)

    def request(self, method: str, path: str, params=None, json=None, decode=None) -> Any:
        spec = self._spec(method, path, params, json, decode)
        started_with = self._tokens.get()
        try:
            return self._executor.execute(spec, self._send, self._tokens.get)
        except AuthExpiredError:
            current = self._tokens.get()
            if not self._refreshed_elsewhere(started_with, current):
                if not self._can_refresh(current):
                    raise
                self._logger.info(f"token rejected on {spec.method} {spec.label}; refreshing")
                self._refresh_from(current)
        # one reissue only; a second AuthExpired surfaces to the caller
        return self._executor.execute(spec, self._send, self._tokens.get)

    def customers(self) -> CustomersEndpoint:
        return CustomersEndpoint(self)

    def invoices(self) -> InvoicesEndpoint:
        return InvoicesEndpoint(self)

    def articles(self) -> ArticlesEndpoint:
        return ArticlesEndpoint(self)


# ---------- httpx (asyncio) ----------


class AsyncClient(_ClientBase):
    """Spiris API client over an httpx.AsyncClient; share it freely between tasks."""

    def __init__(
        self, token: AccessToken, config: ClientConfig | None = None, client=None, **kwargs
    ):
        super().__init__(token, config, **kwargs)
        if client is None:
            import httpx  # noqa: PLC0415

            client = httpx.AsyncClient()
            self._own_client = True
        else:
            self._own_client = False
        self.client = client
        self._executor = AsyncRetryingExecutor(self.config.retry_policy, **self._executor_kwargs)

    async def aclose(self):
        if self._own_client:
            with contextlib.suppress(Exception):
                await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    async def _send(self, spec: RequestSpec, token: AccessToken | None):
        return await self.client.request(
            spec.method,
            spec.url,
            params=spec.params,
            json=spec.json,
            headers=self._headers(spec, token),
            timeout=self.config.timeout,
        )

    async def refresh(self) -> AccessToken:
        current = self._tokens.get()
        if self.oauth is None and current.can_refresh:
            raise ConfigurationError("client has no OAuth2 handler to refresh with")
        return await self._refresh_from(current)

    async def _refresh_from(self, current: AccessToken) -> AccessToken:
        try:
            new = await arefresh(self.oauth, current)
        except AuthError:
            winner = self._lost_refresh_race(current)
            if winner is None:
                raise
            return winner
        return self._install(current, new)

    async def request(self, method: str, path: str, params=None, json=None, decode=None) -> Any:
        spec = self._spec(method, path, params, json, decode)
        started_with = self._tokens.get()
        try:
            return await self._executor.execute(spec, self._send, self._tokens.get)
        except AuthExpiredError:
            current = self._tokens.get()
            if not self._refreshed_elsewhere(started_with, current):
                if not self._can_refresh(current):
                    raise
                self._logger.info(f"token rejected on {spec.method} {spec.label}; refreshing")
                await self._refresh_from(current)
        return await self._executor.execute(spec, self._send, self._tokens.get)

    def customers(self) -> AsyncCustomersEndpoint:
        return AsyncCustomersEndpoint(self)

    def invoices(self) -> AsyncInvoicesEndpoint:
        return AsyncInvoicesEndpoint(self)

    def articles(self) -> AsyncArticlesEndpoint:
        return AsyncArticlesEndpoint(self)
