"""
tracelink command line.

Usage:
    # Annotate the latest event of a Sentry issue with repository links
    tracelink resolve 123456 --project android --snippets

    # Condense an Android trace read from a file (or '-' for stdin)
    tracelink prune crash.txt --project android --error-time 2024-05-01T12:00:00Z

    # Code snippets for every link already embedded in an annotated trace
    tracelink snippets annotated.txt --error-time 2024-05-01T12:00:00Z

    # Commit to tag the running deployment's errors with
    tracelink release --project android

    # Show the repository configuration a project resolves to
    tracelink show-config --project android

Environment Variables:
    BITBUCKET_URL - Canonical repository URL https://<host>/<workspace>/<repo>/src/<branch>/<path>
    BITBUCKET_API_TOKEN - Bitbucket API token (optional for public repositories)
    SENTRY_API_TOKEN, SENTRY_ORGANIZATION - Required by 'resolve'
"""

import argparse
import asyncio
import sys

from tracelink.config import Settings, get_settings
from tracelink.core.errors import ConfigurationMissingError, TraceLinkError, UpstreamUnavailableError
from tracelink.core.ref_providers import detect_release
from tracelink.core.repo_resolver import RepoResolver
from tracelink.integrations.sentry import create_sentry_client
from tracelink.services.trace_resolver import create_trace_resolver
from tracelink.utils.logging import configure_logging

EXIT_OK = 0
EXIT_UPSTREAM = 1
EXIT_CONFIG = 2


def _read_text(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    with open(source, encoding="utf-8") as handle:
        return handle.read()


async def resolve_issue(settings: Settings, args) -> str:
    if not settings.sentry_organization:
        raise ConfigurationMissingError(args.project, "SENTRY_ORGANIZATION is not set")

    sentry = create_sentry_client(settings)
    resolver = create_trace_resolver(settings)
    try:
        event = await sentry.fetch_exception_event(args.issue_id, args.event)
        if event is None:
            return f"Issue {args.issue_id} has no exception with a stack trace.\n"
        resolution = await resolver.resolve_event(
            args.project,
            event,
            deadline=args.deadline,
            include_snippets=args.snippets,
            context_lines=args.context,
            strict=args.strict,
        )
        return resolver.render(resolution, header=event.header)
    finally:
        await sentry.close()
        await resolver.close()


async def prune_trace(settings: Settings, args) -> str:
    resolver = create_trace_resolver(settings)
    try:
        return await resolver.prune_android_trace(args.project, _read_text(args.trace), args.error_time)
    finally:
        await resolver.close()


async def trace_snippets(settings: Settings, args) -> str:
    resolver = create_trace_resolver(settings)
    try:
        return await resolver.snippets_for_trace(
            _read_text(args.trace),
            error_time=args.error_time,
            context_lines=args.context,
            source_root_filter=args.filter,
        )
    finally:
        await resolver.close()


async def release(settings: Settings, args) -> str:
    config = RepoResolver(settings).resolve(args.project)
    resolver = create_trace_resolver(settings)
    try:
        commit = await detect_release(resolver.client, config.workspace, config.repository, config.branch)
    finally:
        await resolver.close()
    return f"{commit or 'unknown'}\n"


def show_config(settings: Settings, args) -> str:
    config = RepoResolver(settings).resolve(args.project)
    lines = [
        f"project:       {config.project}",
        f"origin:        {config.origin.value}",
        f"repository:    {config.base_url}",
        f"branch:        {config.branch or '(detected at resolution time)'}",
        f"source path:   {config.source_path or '(inferred)'}",
        f"package root:  {config.package_root or '-'}",
        f"source roots:  {', '.join(config.source_roots) or '-'}",
    ]
    return "\n".join(lines) + "\n"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tracelink",
        description="Resolve stack frames to commit-pinned repository links",
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--log-json", action="store_true", help="Render logs as JSON")
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve_cmd = subparsers.add_parser("resolve", help="Annotate a Sentry issue's latest event")
    resolve_cmd.add_argument("issue_id", help="Sentry issue ID")
    resolve_cmd.add_argument("--project", "-p", required=True, help="Error-tracking project")
    resolve_cmd.add_argument("--event", default="latest", help="Event ID (default: latest)")
    resolve_cmd.add_argument("--snippets", action="store_true", help="Include code snippets")
    resolve_cmd.add_argument("--context", type=int, help="Snippet context lines")
    resolve_cmd.add_argument("--deadline", type=float, help="Seconds before frames are reported incomplete")
    resolve_cmd.add_argument("--strict", action="store_true", help="Fail when a frame cannot be located")

    prune_cmd = subparsers.add_parser("prune", help="Condense an Android stack trace")
    prune_cmd.add_argument("trace", help="Trace file, or '-' for stdin")
    prune_cmd.add_argument("--project", "-p", required=True, help="Error-tracking project")
    prune_cmd.add_argument("--error-time", help="ISO-8601 time the error occurred")

    snippets_cmd = subparsers.add_parser("snippets", help="Snippets for links in an annotated trace")
    snippets_cmd.add_argument("trace", help="Trace file, or '-' for stdin")
    snippets_cmd.add_argument("--error-time", help="ISO-8601 time the error occurred")
    snippets_cmd.add_argument("--context", type=int, help="Snippet context lines")
    snippets_cmd.add_argument("--filter", help="Only links containing this source root")

    release_cmd = subparsers.add_parser("release", help="Detect the deployment's release commit")
    release_cmd.add_argument("--project", "-p", required=True, help="Error-tracking project")

    config_cmd = subparsers.add_parser("show-config", help="Show a project's repository configuration")
    config_cmd.add_argument("--project", "-p", required=True, help="Error-tracking project")

    return parser


COMMANDS = {
    "resolve": resolve_issue,
    "prune": prune_trace,
    "snippets": trace_snippets,
    "release": release,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(
        level=args.log_level or settings.log_level,
        json_format=args.log_json or settings.log_json,
    )

    try:
        if args.command == "show-config":
            output = show_config(settings, args)
        else:
            output = asyncio.run(COMMANDS[args.command](settings, args))
    except ConfigurationMissingError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except UpstreamUnavailableError as e:
        print(f"Error: upstream unavailable: {e}", file=sys.stderr)
        return EXIT_UPSTREAM
    except TraceLinkError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_UPSTREAM
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_UPSTREAM

    sys.stdout.write(output)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
