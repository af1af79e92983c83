from dataclasses import dataclass, field

from .errors import ConfigurationError

DEFAULT_BASE_URL = "https://eaccountingapi.vismaonline.com/v2/"
DEFAULT_AUTH_URL = "https://identity.vismaonline.com/connect/authorize"
DEFAULT_TOKEN_URL = "https://identity.vismaonline.com/connect/token"
DEFAULT_SCOPES = ("ea:api", "offline_access", "ea:sales")


@dataclass(frozen=True)
class RetryPolicy:
    # Physical sends per logical request (1 disables retries)
    max_attempts: int = 4

    # Exponential backoff between attempts, in seconds
    initial_interval: float = 0.5
    max_interval: float = 30.0
    multiplier: float = 2.0

    # Optional down-only jitter ratio; 0 keeps waits deterministic
    jitter: float = 0.0

    def __post_init__(self):
        if not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ConfigurationError(
                f"max_attempts must be an integer >= 1, got {self.max_attempts!r}"
            )
        if self.initial_interval <= 0:
            raise ConfigurationError(
                f"initial_interval must be positive, got {self.initial_interval!r}"
            )
        if self.max_interval <= 0:
            raise ConfigurationError(f"max_interval must be positive, got {self.max_interval!r}")
        if self.multiplier <= 1.0:
            raise ConfigurationError(f"multiplier must be > 1.0, got {self.multiplier!r}")
        if not 0.0 <= self.jitter < 1.0:
            raise ConfigurationError(f"jitter must be in [0, 1), got {self.jitter!r}")


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    # Per physical attempt, in seconds
    timeout: float = 30.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    tracing_enabled: bool = False
    user_agent: str = "spiris-python"

    def __post_init__(self):
        if not self.base_url:
            raise ConfigurationError("base_url must not be empty")
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout!r}")
        if not isinstance(self.retry_policy, RetryPolicy):
            raise ConfigurationError("retry_policy must be a RetryPolicy")
        if not self.base_url.endswith("/"):
            # urljoin drops the last path segment otherwise
            object.__setattr__(self, "base_url", self.base_url + "/")


@dataclass(frozen=True)
class OAuth2Config:
    client_id: str
    client_secret: str
    redirect_uri: str
    auth_url: str = DEFAULT_AUTH_URL
    token_url: str = DEFAULT_TOKEN_URL
    scopes: tuple[str, ...] = DEFAULT_SCOPES

    def __post_init__(self):
        if not self.client_id:
            raise ConfigurationError("client_id must not be empty")
        if not self.redirect_uri:
            raise ConfigurationError("redirect_uri must not be empty")
        object.__setattr__(self, "scopes", tuple(self.scopes))

    def __repr__(self) -> str:
        return (
            f"OAuth2Config(client_id={self.client_id!r}, redirect_uri={self.redirect_uri!r}, "
            f"auth_url={self.auth_url!r}, token_url={self.token_url!r}, scopes={self.scopes!r})"
        )
