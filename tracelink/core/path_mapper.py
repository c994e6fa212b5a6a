"""Static guess of a frame's repository-relative path."""

import re

import structlog

from tracelink.core.repo_config import RepoConfig

logger = structlog.get_logger(__name__)

ANDROID_SOURCE_ROOT = "app/src/main/java/"
JVM_SOURCE_ROOT = "src/main/java/"
ANDROID_PROJECT_MARKERS = ("android", "demo-app")
JVM_SOURCE_SUFFIXES = (".kt", ".java")

_SLASHES = re.compile(r"/{2,}")


def package_path(module: str | None) -> str:
    """Convert a dotted module (minus its trailing class segment) to a slash path."""
    if not module or "." not in module:
        return ""
    return module.rsplit(".", 1)[0].replace(".", "/")


def infer_source_root(project: str) -> str:
    """Source root guessed from the project id when none is configured."""
    project = project.lower()
    if any(marker in project for marker in ANDROID_PROJECT_MARKERS):
        return ANDROID_SOURCE_ROOT
    return JVM_SOURCE_ROOT


def collapse_slashes(path: str) -> str:
    return _SLASHES.sub("/", path).lstrip("/")


class PathMapper:
    """Maps a (module, filename) pair to a repository-relative path.

    Tries, in order: a configured source root already present in the module
    path, the legacy package root, and finally the configured source path
    (or the inferred source root when none is set) for Kotlin/Java files. Returns None when nothing applies so the caller can
    fall back to dynamic discovery.
    """

    def __init__(self, config: RepoConfig):
        self.config = config
        self.log = logger.bind(component="path_mapper", project=config.project)

    @property
    def source_root(self) -> str:
        return self.config.source_path or infer_source_root(self.config.project)

    def map_path(self, module: str | None, filename: str | None) -> str | None:
        if not filename:
            return None

        pkg = package_path(module)
        path = f"{pkg}/{filename}" if pkg else filename
        path = path.replace("\\", "/")

        for root in self.config.source_roots:
            index = path.find(root)
            if index != -1:
                mapped = path[index:]
                self.log.debug("Mapped via source root", root=root, path=mapped)
                return mapped

        package_root = self.config.package_root
        if package_root:
            root_path = package_root.replace(".", "/").replace("\\", "/").strip("/")
            if root_path and (path.startswith(root_path) or root_path in path):
                mapped = collapse_slashes(self.source_root + path)
                self.log.debug("Mapped via package root", package_root=package_root, path=mapped)
                return mapped

        if path.endswith(JVM_SOURCE_SUFFIXES):
            mapped = collapse_slashes(self.source_root + path)
            self.log.debug("Mapped via default source root", source_root=self.source_root, path=mapped)
            return mapped

        return None
