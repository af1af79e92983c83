from .auth import (
    AsyncOAuth2Handler,
    AuthorizationRequest,
    OAuth2Handler,
    parse_callback,
    verify_state,
)
from .backoff import delay_for, parse_retry_after, wait_for
from .classify import Outcome, RequestOutcome, classify_exception, classify_response
from .client import AsyncClient, Client
from .env import load_client_config_from_env, load_oauth_config_from_env
from .errors import (
    AuthError,
    AuthExpiredError,
    ClientError,
    ConfigurationError,
    ErrorDetail,
    ExhaustedError,
    InvalidGrantError,
    NoRefreshTokenError,
    PermanentError,
    SpirisError,
    StateMismatchError,
)
from .executor import AsyncRetryingExecutor, RequestSpec, RetryingExecutor
from .models import (
    Address,
    Article,
    Customer,
    Invoice,
    InvoiceRow,
    PaginatedResponse,
    PaginationParams,
    QueryParams,
    ResponseMetadata,
)
from .tokens import AccessToken, TokenCell, issue
from .types import ClientConfig, OAuth2Config, RetryPolicy

__all__ = [
    "Client",
    "AsyncClient",
    "ClientConfig",
    "OAuth2Config",
    "RetryPolicy",
    "AccessToken",
    "TokenCell",
    "issue",
    "OAuth2Handler",
    "AsyncOAuth2Handler",
    "AuthorizationRequest",
    "parse_callback",
    "verify_state",
    "wait_for",
    "delay_for",
    "parse_retry_after",
    "Outcome",
    "RequestOutcome",
    "classify_response",
    "classify_exception",
    "RequestSpec",
    "RetryingExecutor",
    "AsyncRetryingExecutor",
    "SpirisError",
    "AuthError",
    "InvalidGrantError",
    "NoRefreshTokenError",
    "StateMismatchError",
    "ClientError",
    "PermanentError",
    "ExhaustedError",
    "AuthExpiredError",
    "ConfigurationError",
    "ErrorDetail",
    "Customer",
    "Invoice",
    "InvoiceRow",
    "Article",
    "Address",
    "PaginatedResponse",
    "ResponseMetadata",
    "PaginationParams",
    "QueryParams",
    "load_oauth_config_from_env",
    "load_client_config_from_env",
]
