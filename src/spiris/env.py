import os

from .errors import ConfigurationError
from .types import DEFAULT_BASE_URL, ClientConfig, OAuth2Config, RetryPolicy

DEFAULT_PREFIX = "SPIRIS_"
DEFAULT_REDIRECT_URI = "http://localhost:8080/callback"

_TRUTHY = {"1", "true", "yes", "on"}


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export ") :]
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # A missing file just means "environment only"
        pass
    return values


def _env_map(env_path: str | None) -> dict[str, str]:
    # actual environment takes precedence over the .env file
    file_env = _parse_env_file(env_path) if env_path else {}
    return {**file_env, **os.environ}


def _number(env: dict[str, str], name: str, cast, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def load_oauth_config_from_env(
    prefix: str = DEFAULT_PREFIX, env_path: str | None = None, **kwargs
) -> OAuth2Config:
    """Build an OAuth2Config from <prefix>CLIENT_ID, <prefix>CLIENT_SECRET,
    <prefix>REDIRECT_URI and <prefix>SCOPES (space or comma separated).

    - If 'env_path' is provided, variables from the .env file augment lookups without
        mutating the process environment. Values in the actual environment win.
    - kwargs override anything read from the environment (client_id, client_secret,
        redirect_uri, scopes, auth_url, token_url).

    Raises:
        ConfigurationError: if no client id can be found
    """
    env = _env_map(env_path)
    values = {
        "client_id": env.get(f"{prefix}CLIENT_ID", ""),
        "client_secret": env.get(f"{prefix}CLIENT_SECRET", ""),
        "redirect_uri": env.get(f"{prefix}REDIRECT_URI") or DEFAULT_REDIRECT_URI,
    }
    scopes = env.get(f"{prefix}SCOPES")
    if scopes:
        values["scopes"] = tuple(s for s in scopes.replace(",", " ").split() if s)
    for key in ("auth_url", "token_url"):
        if env.get(f"{prefix}{key.upper()}"):
            values[key] = env[f"{prefix}{key.upper()}"]
    values.update({k: v for k, v in kwargs.items() if v is not None})
    if not values["client_id"]:
        raise ConfigurationError(f"{prefix}CLIENT_ID is not set")
    return OAuth2Config(**values)


def load_client_config_from_env(
    prefix: str = DEFAULT_PREFIX, env_path: str | None = None
) -> ClientConfig:
    """Build a ClientConfig from <prefix>BASE_URL, <prefix>TIMEOUT, <prefix>MAX_ATTEMPTS,
    <prefix>INITIAL_INTERVAL, <prefix>MAX_INTERVAL, <prefix>MULTIPLIER, <prefix>JITTER and
    <prefix>TRACING; unset values keep their defaults."""
    env = _env_map(env_path)
    defaults = RetryPolicy()
    policy = RetryPolicy(
        max_attempts=_number(env, f"{prefix}MAX_ATTEMPTS", int, defaults.max_attempts),
        initial_interval=_number(
            env, f"{prefix}INITIAL_INTERVAL", float, defaults.initial_interval
        ),
        max_interval=_number(env, f"{prefix}MAX_INTERVAL", float, defaults.max_interval),
        multiplier=_number(env, f"{prefix}MULTIPLIER", float, defaults.multiplier),
        jitter=_number(env, f"{prefix}JITTER", float, defaults.jitter),
    )
    return ClientConfig(
        base_url=env.get(f"{prefix}BASE_URL") or DEFAULT_BASE_URL,
        timeout=_number(env, f"{prefix}TIMEOUT", float, 30.0),
        retry_policy=policy,
        tracing_enabled=env.get(f"{prefix}TRACING", "").strip().lower() in _TRUTHY,
    )
