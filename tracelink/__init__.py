"""tracelink - resolves error-tracking stack frames to commit-pinned repository links."""

__version__ = "0.1.0"
