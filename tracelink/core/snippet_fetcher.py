"""Line-numbered code snippets at a given ref."""

from datetime import datetime

import structlog

from tracelink.core.commit_resolver import CommitResolver
from tracelink.core.errors import SourceFileNotFoundError, UpstreamUnavailableError
from tracelink.core.link_builder import NO_REF_MESSAGE, select_ref
from tracelink.core.models import RepositoryReference, Snippet, SnippetStatus
from tracelink.core.url_parser import find_file_links

logger = structlog.get_logger(__name__)

NO_LINKS_MESSAGE = "No repository links found in stack trace."
FILE_NOT_FOUND_MESSAGE = "Source file not found at this ref."


def extract_window(content: str, line: int, context_lines: int) -> str:
    """Render the lines around ``line`` as ``"<n>: <content>"`` entries.

    The window is ``[max(0, line-1-ctx), min(len, line+ctx))`` in 0-based
    indices, so the target line is always included. An unknown line (<= 0)
    renders the top of the file.
    """
    lines = content.split("\n")
    if line <= 0:
        start, end = 0, min(len(lines), 2 * context_lines + 1)
    else:
        start = max(0, line - 1 - context_lines)
        end = min(len(lines), line + context_lines)
    return "\n".join(f"{index + 1}: {lines[index]}" for index in range(start, end))


class SnippetFetcher:
    """Downloads file content and extracts a context window."""

    def __init__(self, client, commit_resolver: CommitResolver | None = None):
        self.client = client
        self.commit_resolver = commit_resolver or CommitResolver(client)
        self.log = logger.bind(component="snippet_fetcher")

    async def fetch(
        self,
        reference: RepositoryReference,
        ref: str | None,
        relative_path: str,
        line: int,
        context_lines: int = 20,
    ) -> Snippet:
        chosen = select_ref(ref, reference.branch)
        if not chosen:
            return Snippet(status=SnippetStatus.ERROR, path=relative_path, ref="", error=NO_REF_MESSAGE)
        try:
            content = await self.client.get_file_content(
                reference.workspace, reference.repository, chosen, relative_path
            )
        except SourceFileNotFoundError:
            self.log.info("Snippet source not found", path=relative_path, ref=chosen)
            return Snippet(
                status=SnippetStatus.NOT_FOUND,
                path=relative_path,
                ref=chosen,
                error=FILE_NOT_FOUND_MESSAGE,
            )
        except UpstreamUnavailableError as e:
            self.log.warning("Snippet fetch failed", path=relative_path, ref=chosen, error=str(e))
            return Snippet(
                status=SnippetStatus.ERROR,
                path=relative_path,
                ref=chosen,
                error=f"Error fetching code: {e}",
            )

        return Snippet(
            status=SnippetStatus.OK,
            path=relative_path,
            ref=chosen,
            text=extract_window(content, line, context_lines),
        )

    async def fetch_for_trace(
        self,
        annotated_trace: str,
        context_lines: int = 20,
        error_time: datetime | str | None = None,
        source_root_filter: str | None = None,
    ) -> str:
        """Fetch a snippet for every line-anchored link embedded in a trace.

        Each link is re-pinned to the commit active at ``error_time`` when one
        can be found; otherwise the link's own ref is used.
        """
        blocks = []
        for link in find_file_links(annotated_trace):
            if source_root_filter and source_root_filter not in link.url:
                continue

            reference = RepositoryReference(
                host=link.host,
                workspace=link.workspace,
                repository=link.repository,
                branch=link.ref,
            )
            ref = None
            if error_time is not None:
                ref = await self.commit_resolver.resolve_for_frame(reference, link.path, error_time)

            snippet = await self.fetch(reference, ref, link.path, link.line, context_lines)
            body = snippet.text if snippet.found else snippet.error
            blocks.append(f"Snippet for: {link.url}\n{body}\n")

        if not blocks:
            return NO_LINKS_MESSAGE
        return "\n".join(blocks)
