"""Public surface of the tether networking layer."""

from .client import (
    Header,
    NormalizedRequest,
    RequestExecutor,
    ResponseEnvelope,
    build_request,
    fetch_json,
)
from .config import ConnectionInfo, PollOptions, TransportConfig
from .errors import (
    ErrorCode,
    ErrorFactory,
    InsecureAuthenticationError,
    InvalidArgumentError,
    NetworkingError,
    PollTimeoutError,
    RequestTimeoutError,
    RetryLimitExceededError,
    ServerError,
)
from .events import OnceBlockEmitter
from .poll import ABSENT, Poller, PollRun, backoff_delay, poll
from .transport import (
    RequestsTransport,
    Transport,
    TransportRequest,
    TransportResponse,
)
from .watch import poll_json

__all__ = [
    "ABSENT",
    "ConnectionInfo",
    "ErrorCode",
    "ErrorFactory",
    "Header",
    "InsecureAuthenticationError",
    "InvalidArgumentError",
    "NetworkingError",
    "NormalizedRequest",
    "OnceBlockEmitter",
    "PollOptions",
    "PollRun",
    "PollTimeoutError",
    "Poller",
    "RequestExecutor",
    "RequestTimeoutError",
    "RequestsTransport",
    "ResponseEnvelope",
    "RetryLimitExceededError",
    "ServerError",
    "Transport",
    "TransportConfig",
    "TransportRequest",
    "TransportResponse",
    "backoff_delay",
    "build_request",
    "fetch_json",
    "poll",
    "poll_json",
]
