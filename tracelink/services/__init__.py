"""Services that orchestrate the resolution engine."""

from .trace_resolver import TraceResolver, create_trace_resolver

__all__ = [
    "TraceResolver",
    "create_trace_resolver",
]
