"""Integrations module for external services.

Provides:
- Bitbucket Cloud source hosting (commits, code search, browsing, raw files)
- Sentry error tracking (issues, events, exception frames)
"""

from .bitbucket import BitbucketClient, create_bitbucket_client
from .sentry import (
    ExceptionEvent,
    SentryClient,
    create_sentry_client,
    format_java_trace,
    parse_exception_event,
)

__all__ = [
    # Bitbucket
    "BitbucketClient",
    "create_bitbucket_client",
    # Sentry
    "ExceptionEvent",
    "SentryClient",
    "create_sentry_client",
    "format_java_trace",
    "parse_exception_event",
]
