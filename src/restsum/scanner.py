"""Directory scanner that finds REST API route declarations.

Files are matched line by line against the framework patterns in
``restsum.patterns``; no parsing is attempted. A rule may match many
lines of a file and a line may match several rules.
"""

import os
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from pathspec import PathSpec

from restsum.exceptions import ScanError
from restsum.logger import get_logger
from restsum.models import RESOURCE_METHOD, Endpoint
from restsum.patterns import (
    FRAMEWORK_PATTERNS,
    NO_GROUP,
    FrameworkPattern,
    MatchRule,
    patterns_for_extension,
)

logger = get_logger()

UNKNOWN_LANGUAGE = "Unknown"

EXTENSION_TO_LANGUAGE: Dict[str, str] = {
    ".js": "JavaScript",
    ".mjs": "JavaScript",
    ".cjs": "JavaScript",
    ".ts": "TypeScript",
    ".py": "Python",
    ".java": "Java",
    ".go": "Go",
    ".rb": "Ruby",
    ".cs": "C#",
    ".php": "PHP",
}

SKIP_DIRS = frozenset({
    "node_modules", "vendor", ".git", "dist", "build", "target",
    "__pycache__", ".venv", "venv", "env", ".idea", ".vscode", "coverage",
    "test", "tests", "spec", "specs", ".next", "out", "tmp", "temp",
    "cache", ".cache", "logs", "docs", "documentation", "examples",
    "migrations", "public", "static", "assets", "bin", "obj",
})

MAX_FILE_SIZE = 1024 * 1024
MINIFIED_MARKER = ".min."

CONTEXT_RADIUS = 5
RESOURCE_CONTEXT_RADIUS = 3

# How far below a decorator/annotation to look for the handler definition
HANDLER_LOOKAHEAD = 5

_DEFINITION_PATTERNS: Dict[str, re.Pattern] = {
    "Python": re.compile(r"^\s*(?:async\s+)?def\s+(\w+)\s*\("),
    "Java": re.compile(r"^\s*(?:public|private|protected)\s+[^=;(]*?(\w+)\s*\("),
    "C#": re.compile(r"^\s*(?:public|private|protected|internal)\s+[^=;(]*?(\w+)\s*\("),
}

_COMMENT_PREFIXES = ("//", "#")


def language_for_extension(extension: str) -> str:
    """Map a file extension to a language name, or ``UNKNOWN_LANGUAGE``."""
    return EXTENSION_TO_LANGUAGE.get(extension, UNKNOWN_LANGUAGE)


def extract_context(lines: Sequence[str], center: int, radius: int) -> str:
    """Collect the code around ``center`` (0-based) for summarization.

    Takes lines ``center - radius`` through ``center + radius``, drops blank
    and line-comment lines, and joins the rest in their original order.
    """
    start = max(center - radius, 0)
    end = min(center + radius, len(lines) - 1)

    context = []
    for line in lines[start:end + 1]:
        stripped = line.strip()
        if not stripped or stripped.startswith(_COMMENT_PREFIXES):
            continue
        context.append(line)
    return "\n".join(context)


def _group(match: re.Match, index: int) -> Optional[str]:
    if index == NO_GROUP or index > (match.re.groups or 0):
        return None
    return match.group(index)


def _find_handler(lines: Sequence[str], index: int, language: str) -> str:
    """Find the function defined just below a decorator or annotation."""
    pattern = _DEFINITION_PATTERNS.get(language)
    if pattern is None:
        return ""
    for line in lines[index + 1:index + 1 + HANDLER_LOOKAHEAD]:
        if " class " in f" {line} ":
            break
        match = pattern.match(line)
        if match:
            return match.group(1)
    return ""


class EndpointScanner:
    """Walks a directory tree and extracts endpoints from source files."""

    def __init__(
        self,
        patterns: Tuple[FrameworkPattern, ...] = FRAMEWORK_PATTERNS,
        exclude: Iterable[str] = (),
    ):
        self.patterns = patterns
        self._pathspec = PathSpec.from_lines("gitwildmatch", list(exclude))
        self.files_scanned = 0

    def scan(self, root: Path) -> List[Endpoint]:
        """Scan every eligible file under ``root``.

        Raises:
            ScanError: if ``root`` is not a directory or the walk fails.
        """
        root = Path(root)
        if not root.is_dir():
            raise ScanError(f"Directory does not exist: {root}")

        logger.info(f"Scanning directory tree: {root}")
        self.files_scanned = 0
        endpoints: List[Endpoint] = []

        for path in self._discover_files(root):
            profiles = patterns_for_extension(path.suffix, self.patterns)
            if not profiles:
                continue
            self.files_scanned += 1
            endpoints.extend(self._scan_file(path, profiles))

        logger.info(
            f"Scan complete! Analyzed {self.files_scanned} files, "
            f"found {len(endpoints)} endpoints"
        )
        return endpoints

    def scan_file(self, path: Path) -> List[Endpoint]:
        """Scan a single file with every profile matching its extension."""
        path = Path(path)
        return self._scan_file(path, patterns_for_extension(path.suffix, self.patterns))

    def _discover_files(self, root: Path) -> Iterator[Path]:
        def _raise(error: OSError) -> None:
            raise ScanError(f"Error walking directory: {error}") from error

        for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
            dirnames[:] = sorted(d for d in dirnames if not self._skip_dir(d))
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                if self._should_include(path, root):
                    yield path

    @staticmethod
    def _skip_dir(name: str) -> bool:
        return name.startswith(".") or name in SKIP_DIRS

    def _should_include(self, path: Path, root: Path) -> bool:
        name = path.name
        if name.startswith(".") or MINIFIED_MARKER in name:
            return False

        relative = path.relative_to(root)
        if any(self._skip_dir(part) for part in relative.parts[:-1]):
            return False
        if self._pathspec.match_file(relative.as_posix()):
            return False

        try:
            if not path.is_file() or path.stat().st_size > MAX_FILE_SIZE:
                return False
        except OSError as e:
            logger.warning(f"Cannot stat {path}: {e}")
            return False
        return True

    def _scan_file(
        self, path: Path, profiles: Tuple[FrameworkPattern, ...]
    ) -> List[Endpoint]:
        if not profiles:
            return []
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Error analyzing {path}: {e}")
            return []

        lines = [line.rstrip("\r") for line in content.split("\n")]
        language = language_for_extension(path.suffix)

        endpoints = []
        for profile in profiles:
            for index, line in enumerate(lines):
                for rule in profile.rules:
                    match = rule.regex.search(line)
                    if match is None:
                        continue
                    endpoint = self._build_endpoint(
                        match, rule, lines, index, path, language, profile.name
                    )
                    if endpoint is not None:
                        endpoints.append(endpoint)

        if endpoints:
            logger.debug(f"Found {len(endpoints)} endpoints in {path}")
        return endpoints

    def _build_endpoint(
        self,
        match: re.Match,
        rule: MatchRule,
        lines: Sequence[str],
        index: int,
        path: Path,
        language: str,
        framework: str,
    ) -> Optional[Endpoint]:
        method = _group(match, rule.method_group)
        route = _group(match, rule.path_group)
        handler = _group(match, rule.handler_group) or ""

        if rule.expands(lines[index]):
            if not route:
                return None
            return Endpoint(
                method=RESOURCE_METHOD,
                path="/" + route,
                file=str(path),
                line=index + 1,
                handler=handler,
                language=language,
                framework=framework,
                raw_code=extract_context(lines, index, RESOURCE_CONTEXT_RADIUS),
            )

        if not method and route:
            method = "GET"
        if not method or not route:
            return None

        if not handler:
            handler = _find_handler(lines, index, language)

        return Endpoint(
            method=method.upper(),
            path=route,
            file=str(path),
            line=index + 1,
            handler=handler,
            language=language,
            framework=framework,
            raw_code=extract_context(lines, index, CONTEXT_RADIUS),
        )
