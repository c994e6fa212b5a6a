"""Android stack trace classification and noise pruning.

Frames are classified with a fixed precedence: synthetic, obfuscated,
framework, application, library. Application frames are kept with a link to
their source; the first framework frame after application code is kept for
context and the rest of that run is collapsed into one summary line.
"""

import re
from dataclasses import dataclass
from enum import Enum

import structlog

from tracelink.core.errors import RefNotFoundError
from tracelink.core.link_builder import LinkBuilder
from tracelink.core.models import UNKNOWN_LINE, StackFrame
from tracelink.core.path_mapper import PathMapper
from tracelink.core.repo_config import RepoConfig

logger = structlog.get_logger(__name__)

FRAMEWORK_PREFIXES = (
    "androidx.",
    "android.",
    "java.",
    "kotlin.",
    "kotlinx.",
    "dalvik.",
    "com.android.",
    "sun.",
    "org.jetbrains.kotlin",
)

SYNTHETIC_PATTERNS = (
    "$$ExternalSyntheticLambda",
    "$r8$lambda$",
    "$$Lambda$",
    "$$SyntheticClass",
    "D8$$SyntheticClass",
    "$$ExternalSynthetic",
)

FRAME_PREFIX = "at "
NO_APP_CODE_NOTE = "    [Note: No application-specific code found in stack trace]"
EMPTY_TRACE_MESSAGE = "Empty stack trace provided"

_LONG_RANDOM_SUFFIX = re.compile(r"\$[a-zA-Z0-9_]{10,}")
_SINGLE_CHAR_METHOD = re.compile(r"\.[a-zA-Z]\(.*:0\)")
_FRAME = re.compile(r"^([\w$.]+)\.([\w$<>-]+)\(([^:()]+)(?::(\d+))?\)")


class FrameKind(str, Enum):
    APPLICATION = "application"
    FRAMEWORK = "framework"
    LIBRARY = "library"
    SYNTHETIC = "synthetic"
    OBFUSCATED = "obfuscated"


@dataclass
class StackTraceAnalysis:
    """Pruned trace plus frame counts."""
    cleaned_trace: str
    total_frames: int
    app_frames: int
    framework_frames: int


def parse_frame(frame: str) -> StackFrame | None:
    """Parse ``pkg.Class.method(File.kt:42)`` into a StackFrame."""
    match = _FRAME.match(frame.strip())
    if not match:
        return None
    module, function, filename, line = match.groups()
    return StackFrame(
        module=module,
        function=function,
        filename=filename,
        lineno=int(line) if line else UNKNOWN_LINE,
    )


def omitted_summary(count: int) -> str:
    return f"    ... {count} framework calls omitted ..."


class FrameClassifier:
    """Classifies and prunes Android traces for one project.

    Usage:
        classifier = FrameClassifier(config)
        print(classifier.prune(raw_trace))
    """

    def __init__(
        self,
        config: RepoConfig,
        link_builder: LinkBuilder | None = None,
        path_mapper: PathMapper | None = None,
        ref: str | None = None,
    ):
        self.config = config
        self.app_root = config.package_root or ""
        self.link_builder = link_builder or LinkBuilder()
        self.path_mapper = path_mapper or PathMapper(config)
        self.ref = ref
        self.log = logger.bind(component="frame_classifier", project=config.project)

    def is_synthetic(self, frame: str) -> bool:
        return any(pattern in frame for pattern in SYNTHETIC_PATTERNS)

    def is_obfuscated(self, frame: str) -> bool:
        return (
            ":0)" in frame
            or _LONG_RANDOM_SUFFIX.search(frame) is not None
            or _SINGLE_CHAR_METHOD.search(frame) is not None
        )

    def is_framework(self, frame: str) -> bool:
        return frame.startswith(FRAMEWORK_PREFIXES)

    def is_application(self, frame: str) -> bool:
        return bool(self.app_root) and frame.startswith(self.app_root)

    def classify(self, frame: str) -> FrameKind:
        frame = frame.strip().removeprefix(FRAME_PREFIX)
        if self.is_synthetic(frame):
            return FrameKind.SYNTHETIC
        if self.is_obfuscated(frame):
            return FrameKind.OBFUSCATED
        if self.is_framework(frame):
            return FrameKind.FRAMEWORK
        if self.is_application(frame):
            return FrameKind.APPLICATION
        return FrameKind.LIBRARY

    def build_link(self, frame: str) -> str | None:
        parsed = parse_frame(frame)
        if parsed is None:
            return None
        path = self.path_mapper.map_path(parsed.module, parsed.filename)
        if path is None:
            return None
        try:
            return self.link_builder.build(self.config.reference, self.ref, path, parsed.lineno)
        except RefNotFoundError:
            self.log.warning("No ref to link frame against", path=path)
            return None

    def prune(self, trace: str | None) -> str:
        """Condense a raw trace to application frames with links."""
        if not trace:
            return EMPTY_TRACE_MESSAGE

        lines = trace.split("\n")
        output = [lines[0]]

        found_app_frame = False
        skipping_framework = False
        skipped_count = 0

        for raw in lines[1:]:
            line = raw.strip()

            if not line.startswith(FRAME_PREFIX):
                if line:
                    if skipped_count:
                        output.append(omitted_summary(skipped_count))
                        skipped_count = 0
                    output.append(line)
                    skipping_framework = False
                continue

            frame = line[len(FRAME_PREFIX):]
            kind = self.classify(frame)

            if kind == FrameKind.APPLICATION:
                if skipped_count:
                    output.append(omitted_summary(skipped_count))
                    skipped_count = 0
                skipping_framework = False

                rendered = f"    at {frame}"
                link = self.build_link(frame)
                if link:
                    rendered += f" [{link}]"
                output.append(rendered)
                found_app_frame = True
            elif kind in (FrameKind.SYNTHETIC, FrameKind.OBFUSCATED):
                continue
            elif not skipping_framework and found_app_frame:
                output.append(f"    at {frame}")
                skipping_framework = True
            elif skipping_framework:
                skipped_count += 1

        if skipped_count:
            output.append(omitted_summary(skipped_count))

        if not found_app_frame:
            output.append(NO_APP_CODE_NOTE)

        return "\n".join(output) + "\n"

    def analyze(self, trace: str | None) -> StackTraceAnalysis:
        if not trace:
            return StackTraceAnalysis(EMPTY_TRACE_MESSAGE, 0, 0, 0)

        total = app = framework = 0
        for raw in trace.split("\n")[1:]:
            line = raw.strip()
            if not line.startswith(FRAME_PREFIX):
                continue
            total += 1
            kind = self.classify(line)
            if kind == FrameKind.APPLICATION:
                app += 1
            elif kind == FrameKind.FRAMEWORK:
                framework += 1

        cleaned = self.prune(trace)
        self.log.debug("Analyzed trace", total_frames=total, app_frames=app, framework_frames=framework)
        return StackTraceAnalysis(cleaned, total, app, framework)
