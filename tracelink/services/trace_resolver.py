"""
Trace Resolver Service - resolves whole stack traces to repository locations.

Per frame: static path guess or dynamic discovery, commit at error time,
commit-pinned link, optional snippet. Frames of one trace are resolved
concurrently; the Bitbucket client's semaphore bounds in-flight requests.

Guarantees:
- Output order equals input frame order
- A missing configuration aborts the request; everything else degrades to an
  annotated per-frame status
- Frames still unresolved at the deadline (branch detection included) are
  reported as incomplete
"""

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from tracelink.config import Settings, get_settings
from tracelink.core.commit_resolver import CommitResolver, to_utc
from tracelink.core.errors import PathNotFoundError
from tracelink.core.file_locator import BrowseBudget, FileLocator
from tracelink.core.frame_classifier import FrameClassifier
from tracelink.core.link_builder import NO_REF_MESSAGE, LinkBuilder, select_ref
from tracelink.core.models import (
    PathSource,
    RepositoryReference,
    ResolutionStatus,
    ResolvedLocation,
    StackFrame,
    TraceResolution,
)
from tracelink.core.path_mapper import JVM_SOURCE_SUFFIXES, PathMapper
from tracelink.core.ref_providers import detect_branch
from tracelink.core.repo_config import RepoConfig
from tracelink.core.repo_resolver import RepoResolver
from tracelink.core.snippet_fetcher import SnippetFetcher
from tracelink.integrations.bitbucket import BitbucketClient, create_bitbucket_client
from tracelink.integrations.sentry import ExceptionEvent
from tracelink.utils.logging import get_logger, log_operation

logger = get_logger(__name__)


@dataclass
class FrameContext:
    """Everything one trace's frame resolutions share."""
    config: RepoConfig
    reference: RepositoryReference
    path_mapper: PathMapper
    locator: FileLocator
    error_time: datetime | None
    include_snippets: bool
    context_lines: int
    strict: bool


class TraceResolver:
    """
    Resolves stack frames into commit-pinned repository links.

    Usage:
        resolver = create_trace_resolver(settings)
        resolution = await resolver.resolve_trace("android", frames, error_time=event.error_time)
        print(resolver.render(resolution, header=event.header))
        await resolver.close()
    """

    def __init__(
        self,
        client: BitbucketClient,
        repo_resolver: RepoResolver,
        settings: Settings | None = None,
        link_builder: LinkBuilder | None = None,
        commit_resolver: CommitResolver | None = None,
        snippet_fetcher: SnippetFetcher | None = None,
        locator_factory: Callable[[BrowseBudget], FileLocator] | None = None,
    ):
        self.client = client
        self.repo_resolver = repo_resolver
        self.settings = settings or repo_resolver.settings
        self.link_builder = link_builder or LinkBuilder()
        self.commit_resolver = commit_resolver or CommitResolver(client)
        self.snippet_fetcher = snippet_fetcher or SnippetFetcher(client, self.commit_resolver)
        self.locator_factory = locator_factory or (
            lambda budget: FileLocator.default(client, budget=budget, max_depth=self.settings.browse_max_depth)
        )
        self.log = logger.bind(component="trace_resolver")

    async def _effective_reference(self, config: RepoConfig) -> RepositoryReference:
        if config.branch:
            return config.reference
        branch = await detect_branch(self.client, config.workspace, config.repository)
        self.log.info("Detected branch for project", project=config.project, branch=branch)
        return config.reference.with_branch(branch or "")

    async def resolve_trace(
        self,
        project: str,
        frames: Sequence[StackFrame],
        error_time: datetime | str | None = None,
        deadline: float | None = None,
        include_snippets: bool = False,
        context_lines: int | None = None,
        strict: bool = False,
    ) -> TraceResolution:
        """
        Resolve every frame of one trace.

        Args:
            project: Error-tracking project identifier
            frames: Frames in display order
            error_time: When the error occurred; pins links to that commit
            deadline: Seconds before unresolved frames are reported incomplete
            include_snippets: Fetch a code snippet for each resolved frame
            context_lines: Snippet context (defaults to settings)
            strict: Raise PathNotFoundError instead of marking frames not found

        Raises:
            ConfigurationMissingError: No repository configuration for the project
            PathNotFoundError: In strict mode, when a frame cannot be located
        """
        config = self.repo_resolver.resolve(project)
        error_time = to_utc(error_time) if error_time is not None else None
        timeout = deadline if deadline is not None else self.settings.resolution_deadline_seconds

        with log_operation("resolve_trace", logger=self.log, project=config.project, frames=len(frames)) as op:
            loop = asyncio.get_running_loop()
            started = loop.time()
            try:
                reference = await asyncio.wait_for(self._effective_reference(config), timeout=timeout)
            except TimeoutError:
                self.log.warning("Branch detection exceeded the deadline", project=config.project, deadline=timeout)
                resolution = TraceResolution(
                    project=config.project,
                    error_time=error_time,
                    deadline_expired=True,
                    locations=[
                        ResolvedLocation(frame=frame, status=ResolutionStatus.INCOMPLETE, reference=config.reference)
                        for frame in frames
                    ],
                )
                op["incomplete"] = resolution.incomplete_count
                return resolution
            if timeout is not None:
                timeout = max(0.0, timeout - (loop.time() - started))

            context = FrameContext(
                config=config,
                reference=reference,
                path_mapper=PathMapper(config),
                locator=self.locator_factory(BrowseBudget(self.settings.browse_call_budget)),
                error_time=error_time,
                include_snippets=include_snippets,
                context_lines=context_lines if context_lines is not None else self.settings.snippet_context_lines,
                strict=strict,
            )

            tasks = [asyncio.create_task(self._resolve_frame(context, frame)) for frame in frames]
            pending: set[asyncio.Task] = set()
            if tasks:
                _, pending = await asyncio.wait(tasks, timeout=timeout)
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

            resolution = TraceResolution(
                project=config.project,
                error_time=error_time,
                deadline_expired=bool(pending),
            )
            for frame, task in zip(frames, tasks):
                resolution.locations.append(self._collect(frame, task, pending, reference, strict))

            op["resolved"] = resolution.resolved_count
            op["incomplete"] = resolution.incomplete_count
        return resolution

    def _collect(
        self,
        frame: StackFrame,
        task: asyncio.Task,
        pending: set[asyncio.Task],
        reference: RepositoryReference,
        strict: bool,
    ) -> ResolvedLocation:
        if task in pending or task.cancelled():
            return ResolvedLocation(frame=frame, status=ResolutionStatus.INCOMPLETE, reference=reference)

        exc = task.exception()
        if exc is None:
            return task.result()
        if strict and isinstance(exc, PathNotFoundError):
            raise exc
        self.log.error("Frame resolution failed", frame=frame.describe(), error=str(exc), exc_info=exc)
        return ResolvedLocation(
            frame=frame,
            status=ResolutionStatus.ERROR,
            reference=reference,
            error=str(exc),
        )

    async def _locate(self, context: FrameContext, frame: StackFrame) -> tuple[str | None, PathSource | None]:
        static = context.path_mapper.map_path(frame.module, frame.filename)
        dynamic_first = (
            self.settings.prefer_dynamic_discovery
            and context.config.is_url_derived
            and frame.filename.endswith(JVM_SOURCE_SUFFIXES)
        )
        if static and not dynamic_first:
            return static, PathSource.STATIC

        discovered = await context.locator.locate(
            context.reference.workspace,
            context.reference.repository,
            context.reference.branch,
            frame.filename,
            frame.package or None,
        )
        if discovered:
            return discovered, PathSource.DYNAMIC
        if static:
            return static, PathSource.STATIC
        return None, None

    async def _resolve_frame(self, context: FrameContext, frame: StackFrame) -> ResolvedLocation:
        reference = context.reference
        if not frame.filename:
            return ResolvedLocation(frame=frame, status=ResolutionStatus.NOT_FOUND, reference=reference)

        path, source = await self._locate(context, frame)
        if path is None:
            if context.strict:
                raise PathNotFoundError(frame.filename, frame.module)
            return ResolvedLocation(frame=frame, status=ResolutionStatus.NOT_FOUND, reference=reference)

        commit_hash = await self.commit_resolver.resolve_for_frame(reference, path, context.error_time)
        ref = select_ref(commit_hash, reference.branch)
        if not ref:
            self.log.warning("No commit or branch for frame", frame=frame.describe(), path=path)
            return ResolvedLocation(
                frame=frame,
                status=ResolutionStatus.ERROR,
                reference=reference,
                path=path,
                path_source=source,
                error=NO_REF_MESSAGE,
            )
        location = ResolvedLocation(
            frame=frame,
            status=ResolutionStatus.RESOLVED,
            reference=reference,
            path=path,
            ref=ref,
            url=self.link_builder.build(reference, commit_hash, path, frame.lineno),
            path_source=source,
        )

        if context.include_snippets:
            location.snippet = await self.snippet_fetcher.fetch(
                reference, ref, path, frame.lineno, context.context_lines
            )
        return location

    async def resolve_event(self, project: str, event: ExceptionEvent, **kwargs) -> TraceResolution:
        """Resolve a parsed Sentry event, pinned to its error time."""
        kwargs.setdefault("error_time", event.error_time)
        return await self.resolve_trace(project, event.frames, **kwargs)

    def render(self, resolution: TraceResolution, header: str | None = None) -> str:
        """Annotated trace: one ``at`` line per frame with its link or marker."""
        lines = [header] if header else []
        for location in resolution.locations:
            lines.append(f"    at {location.frame.describe()} {location.marker}")
            if location.snippet is not None:
                body = location.snippet.text if location.snippet.found else location.snippet.error
                lines.extend(f"        {snippet_line}" for snippet_line in (body or "").split("\n"))
        return "\n".join(lines) + "\n"

    async def prune_android_trace(
        self,
        project: str,
        trace: str,
        error_time: datetime | str | None = None,
    ) -> str:
        """Condense an Android trace, pinning kept links to the branch commit at ``error_time``."""
        config = self.repo_resolver.resolve(project)
        reference = await self._effective_reference(config)
        commit_hash = None
        if error_time is not None:
            commit_hash = await self.commit_resolver.resolve_for_frame(reference, None, error_time)
        if reference != config.reference:
            config = RepoConfig(
                project=config.project,
                reference=reference,
                source_roots=config.source_roots,
                origin=config.origin,
                package_root=config.package_root,
                source_path=config.source_path,
            )
        classifier = FrameClassifier(config, link_builder=self.link_builder, ref=commit_hash)
        return classifier.prune(trace)

    async def snippets_for_trace(
        self,
        trace: str,
        error_time: datetime | str | None = None,
        context_lines: int | None = None,
        source_root_filter: str | None = None,
    ) -> str:
        """Snippets for every repository link already embedded in ``trace``."""
        return await self.snippet_fetcher.fetch_for_trace(
            trace,
            context_lines=context_lines if context_lines is not None else self.settings.snippet_context_lines,
            error_time=error_time,
            source_root_filter=source_root_filter,
        )

    async def close(self):
        await self.client.close()


def create_trace_resolver(settings: Settings | None = None) -> TraceResolver:
    """Factory function for creating a TraceResolver from settings."""
    settings = settings or get_settings()
    return TraceResolver(
        client=create_bitbucket_client(settings),
        repo_resolver=RepoResolver(settings),
        settings=settings,
    )
