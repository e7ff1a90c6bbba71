"""
Shared infrastructure: rate limiting, retry with backoff, error taxonomy.
"""

from .errors import (
    PipelineError,
    ExternalServiceError,
    TransientExternalError,
    SchemaValidationError,
    MediaReadError,
    PerClipRenderError,
    NoClipsRenderedError,
    JobCancelledError,
)
from .rate_limiter import RateLimiter, RateLimiters, build_rate_limiters
from .retry import RetryPolicy, ResilientCaller, retry_with_backoff, is_transient_http_error

__all__ = [
    'PipelineError',
    'ExternalServiceError',
    'TransientExternalError',
    'SchemaValidationError',
    'MediaReadError',
    'PerClipRenderError',
    'NoClipsRenderedError',
    'JobCancelledError',
    'RateLimiter',
    'RateLimiters',
    'build_rate_limiters',
    'RetryPolicy',
    'ResilientCaller',
    'retry_with_backoff',
    'is_transient_http_error',
]
