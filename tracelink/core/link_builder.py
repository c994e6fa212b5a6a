"""Composes browsable, line-anchored repository links."""

import re

from tracelink.core.errors import RefNotFoundError
from tracelink.core.models import RepositoryReference

UNKNOWN_REF = "unknown"
NO_REF_MESSAGE = "no commit or branch to link against"
SOURCE_LAYOUT_SEGMENTS = frozenset({"app", "src", "main", "java", "kotlin", "test", "androidTest"})

_SCHEME = re.compile(r"^(https?:)/+")
_REPEATED_SLASHES = re.compile(r"(?<!:)/{2,}")


def select_ref(commit_hash: str | None, branch: str) -> str:
    """Prefer a real commit hash over the branch name."""
    if commit_hash and commit_hash.strip() and commit_hash.strip() != UNKNOWN_REF:
        return commit_hash.strip()
    return branch


def collapse_repeated_segments(path: str) -> str:
    """Drop immediately repeated path segments.

    A single segment equal to its predecessor is always dropped, so
    ``src/main/java/java/Foo.kt`` becomes ``src/main/java/Foo.kt``. Longer
    repeated runs are dropped only when made of source layout directories
    (``src/main/src/main/java`` becomes ``src/main/java``); a package path such
    as ``feature/api/feature/api`` is left alone.
    """
    result: list[str] = []
    for segment in path.replace("\\", "/").split("/"):
        if not segment:
            continue
        if result and result[-1] == segment:
            continue
        result.append(segment)
        for size in range(2, len(result) // 2 + 1):
            run = result[-size:]
            if run == result[-2 * size:-size] and all(part in SOURCE_LAYOUT_SEGMENTS for part in run):
                del result[-size:]
                break
    return "/".join(result)


def normalize_url(url: str) -> str:
    """Collapse runs of '/' everywhere except the '//' after the scheme."""
    url = _SCHEME.sub(r"\1//", url)
    scheme_end = url.find("://")
    if scheme_end == -1:
        return _REPEATED_SLASHES.sub("/", url)
    head, tail = url[:scheme_end + 3], url[scheme_end + 3:]
    return head + re.sub(r"/{2,}", "/", tail)


class LinkBuilder:
    """Builds ``<base>/src/<ref>/<path>#lines-<n>`` links.

    Raises RefNotFoundError rather than emitting ``src//<path>`` when there is
    neither a commit nor a branch.
    """

    def build(
        self,
        reference: RepositoryReference,
        ref: str | None,
        relative_path: str,
        line: int | None = None,
    ) -> str:
        chosen = select_ref(ref, reference.branch)
        if not chosen:
            raise RefNotFoundError(relative_path)
        path = collapse_repeated_segments(relative_path)
        url = normalize_url(f"{reference.base_url}/src/{chosen}/{path}")
        if isinstance(line, int) and not isinstance(line, bool) and line > 0:
            url += f"#lines-{line}"
        return url
