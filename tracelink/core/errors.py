"""Error taxonomy for stack-trace resolution.

Only ConfigurationMissingError aborts a whole request. Every other condition
degrades to a partial, explicitly annotated result at the resolution boundary.
"""


class TraceLinkError(Exception):
    """Base exception for tracelink."""

    pass


class ConfigurationMissingError(TraceLinkError):
    """Raised when no repository configuration can be resolved for a project."""

    def __init__(self, project: str, reason: str = ""):
        self.project = project
        self.reason = reason
        message = f"No repository configuration for project '{project}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UrlParseError(TraceLinkError, ValueError):
    """Raised when a repository URL does not have the expected shape."""

    def __init__(self, url: str | None, expected: str = "https://<host>/<workspace>/<repo>/src/<branch>/<path>"):
        self.url = url
        super().__init__(f"Invalid repository URL {url!r}, expected {expected}")


class UpstreamUnavailableError(TraceLinkError):
    """Raised when a hosting or tracking API call fails."""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class SourceFileNotFoundError(UpstreamUnavailableError):
    """Raised when a file does not exist at the requested ref."""

    pass


class PathNotFoundError(TraceLinkError):
    """Raised in strict mode when every discovery strategy came up empty."""

    def __init__(self, filename: str, module: str = ""):
        self.filename = filename
        self.module = module
        super().__init__(f"Could not locate {filename!r} (module {module!r}) in the repository")


class RefNotFoundError(TraceLinkError, ValueError):
    """Raised when neither a commit nor a branch is available to link against."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No commit or branch to link {path!r} against")
