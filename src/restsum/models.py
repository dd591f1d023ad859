"""Data models for restsum."""

from dataclasses import asdict, dataclass
from typing import Any, Dict

# Method tag for declarations that expand to a bundle of routes
RESOURCE_METHOD = "RESOURCE"

# Summary assigned when summarization was attempted and failed
SUMMARY_UNAVAILABLE = "Summary unavailable"


@dataclass
class Endpoint:
    """A REST API route detected in source code.

    Everything except ``summary`` is fixed when the scanner creates the
    endpoint. ``summary`` stays empty until the summarizer (or the cache)
    fills it in.
    """
    method: str
    path: str
    file: str
    line: int
    handler: str = ""
    language: str = ""
    framework: str = ""
    raw_code: str = ""
    summary: str = ""

    @property
    def location(self) -> str:
        return f"{self.file}:{self.line}"

    @property
    def has_summary(self) -> bool:
        """True when the summary is real text, not empty or the sentinel."""
        return bool(self.summary) and self.summary != SUMMARY_UNAVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
