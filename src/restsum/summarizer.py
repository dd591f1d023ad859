"""Batched, rate-limited endpoint summarization.

Endpoints are grouped into fixed-size batches and each batch is sent to the
text-generation service as one prompt. Batches run on their own worker
threads, but at most ``max_concurrency`` requests are in flight at once
and batch ``i`` waits ``i * request_interval`` seconds before it may
start, which keeps the aggregate request rate under the service limit.

A failed batch never aborts the run: its endpoints get
``SUMMARY_UNAVAILABLE``. When the caller's deadline expires, batches still
running are abandoned and their endpoints keep an empty summary.

Caching is left to the caller.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from restsum.ai import TextGenerator
from restsum.exceptions import AIError
from restsum.logger import get_logger
from restsum.models import SUMMARY_UNAVAILABLE, Endpoint

logger = get_logger()

BATCH_SIZE = 5
MAX_CONCURRENCY = 3
REQUEST_INTERVAL = 2.0
TEMPERATURE = 0.2
MAX_OUTPUT_TOKENS = 256

MAX_SUMMARY_LENGTH = 50
ELLIPSIS = "..."

MAX_RELEVANT_LINES = 3
RELEVANT_KEYWORDS = (
    "def ", "function", "return", "create", "update", "delete",
    "get", "post", "find", "save",
)

_OK = "ok"
_FAILED = "failed"
_ABANDONED = "abandoned"


class PipelineState(Enum):
    IDLE = "idle"
    BATCHING = "batching"
    DISPATCHING = "dispatching"
    COLLECTING = "collecting"
    DONE = "done"


@dataclass
class SummaryReport:
    """Outcome counts for one ``summarize`` call."""
    batches: int = 0
    succeeded: int = 0
    failed: int = 0
    abandoned: int = 0

    @property
    def timed_out(self) -> bool:
        return self.abandoned > 0


def make_batches(endpoints: Sequence[Endpoint], size: int) -> List[List[Endpoint]]:
    """Split endpoints into contiguous groups of ``size``, keeping order."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(endpoints[i:i + size]) for i in range(0, len(endpoints), size)]


def extract_relevant_code(raw_code: str) -> str:
    """Pick up to three telling lines from a code snippet.

    Lines mentioning definitions, returns or CRUD verbs win; if none do,
    the first non-blank line is used.
    """
    lines = raw_code.split("\n")
    relevant = []

    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith(("//", "#")):
            continue
        lower = stripped.lower()
        if any(keyword in lower for keyword in RELEVANT_KEYWORDS):
            relevant.append(stripped)
            if len(relevant) >= MAX_RELEVANT_LINES:
                break

    if not relevant:
        for line in lines:
            stripped = line.strip()
            if stripped:
                relevant.append(stripped)
                break

    return "; ".join(relevant)


def build_batch_prompt(batch: Sequence[Endpoint]) -> str:
    """Build one prompt asking for a summary line per endpoint."""
    parts = [
        "Analyze these REST API endpoints. For each, provide a one-line "
        f"summary (max {MAX_SUMMARY_LENGTH} chars).\n",
        "Format: [N] Summary\n\n",
    ]
    for number, endpoint in enumerate(batch, start=1):
        parts.append(f"[{number}] {endpoint.method} {endpoint.path}\n")
        code = extract_relevant_code(endpoint.raw_code)
        if code:
            parts.append(f"Code: {code}\n")
        parts.append("\n")
    parts.append("Summaries:")
    return "".join(parts)


def truncate_summary(summary: str, limit: int = MAX_SUMMARY_LENGTH) -> str:
    if len(summary) <= limit:
        return summary
    return summary[:limit - len(ELLIPSIS)] + ELLIPSIS


def parse_batch_response(text: str) -> List[str]:
    """Pull ``[N] summary`` lines out of a model response, in order.

    The number inside the brackets is ignored; summaries are matched to
    endpoints by position. Lines of any other shape are skipped.
    """
    summaries = []
    for line in text.split("\n"):
        line = line.strip()
        if not line.startswith("["):
            continue
        close = line.find("]")
        if close <= 0:
            continue
        summary = line[close + 1:].strip()
        if summary:
            summaries.append(truncate_summary(summary))
    return summaries


class EndpointSummarizer:
    """Fills in ``Endpoint.summary`` using a ``TextGenerator``."""

    def __init__(
        self,
        generator: TextGenerator,
        batch_size: int = BATCH_SIZE,
        max_concurrency: int = MAX_CONCURRENCY,
        request_interval: float = REQUEST_INTERVAL,
        temperature: float = TEMPERATURE,
        max_tokens: int = MAX_OUTPUT_TOKENS,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.generator = generator
        self.batch_size = batch_size
        self.max_concurrency = max_concurrency
        self.request_interval = max(request_interval, 0.0)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.state = PipelineState.IDLE

    def summarize(
        self, endpoints: Sequence[Endpoint], timeout: Optional[float] = None
    ) -> SummaryReport:
        """Summarize endpoints in place.

        Args:
            endpoints: Endpoints to summarize; their ``summary`` is overwritten.
            timeout: Optional deadline in seconds for the whole call.

        Returns:
            Counts of succeeded, failed and abandoned batches.
        """
        self.state = PipelineState.BATCHING
        batches = make_batches(endpoints, self.batch_size)
        report = SummaryReport(batches=len(batches))
        if not batches:
            self.state = PipelineState.DONE
            return report

        deadline = time.monotonic() + timeout if timeout is not None else None
        cancelled = threading.Event()
        gate = threading.BoundedSemaphore(self.max_concurrency)
        commit_lock = threading.Lock()

        self.state = PipelineState.DISPATCHING
        logger.debug(
            f"Dispatching {len(batches)} batches "
            f"(max {self.max_concurrency} in flight)"
        )
        executor = ThreadPoolExecutor(
            max_workers=len(batches), thread_name_prefix="restsum-batch"
        )
        futures: Dict[Future, int] = {
            executor.submit(
                self._run_batch, index, batch, gate, cancelled, commit_lock, deadline
            ): index
            for index, batch in enumerate(batches)
        }

        self.state = PipelineState.COLLECTING
        remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
        _, pending = wait(futures, timeout=remaining)
        if pending:
            # Workers check this under commit_lock before touching endpoints
            with commit_lock:
                cancelled.set()
            logger.warning(
                f"Summarization deadline exceeded; abandoning {len(pending)} "
                f"of {len(batches)} batches"
            )
        executor.shutdown(wait=False, cancel_futures=True)

        for future in futures:
            if not future.done() or future.cancelled():
                report.abandoned += 1
                continue
            outcome = future.result()
            if outcome == _OK:
                report.succeeded += 1
            elif outcome == _FAILED:
                report.failed += 1
            else:
                report.abandoned += 1

        self.state = PipelineState.DONE
        return report

    def _run_batch(
        self,
        index: int,
        batch: List[Endpoint],
        gate: threading.BoundedSemaphore,
        cancelled: threading.Event,
        commit_lock: threading.Lock,
        deadline: Optional[float],
    ) -> str:
        delay = index * self.request_interval
        if delay and cancelled.wait(delay):
            return _ABANDONED

        with gate:
            if cancelled.is_set():
                return _ABANDONED
            summaries, outcome = self._request(index, batch, deadline)

        with commit_lock:
            if cancelled.is_set():
                return _ABANDONED
            for position, endpoint in enumerate(batch):
                if position < len(summaries):
                    endpoint.summary = summaries[position]
                else:
                    endpoint.summary = SUMMARY_UNAVAILABLE
        return outcome

    def _request(self, index: int, batch: List[Endpoint], deadline: Optional[float]):
        prompt = build_batch_prompt(batch)
        timeout = None
        if deadline is not None:
            timeout = max(deadline - time.monotonic(), 0.001)

        try:
            text = self.generator.generate(
                prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=timeout,
            )
        except AIError as e:
            logger.warning(f"Failed to summarize batch {index}: {e}")
            return [], _FAILED
        except Exception as e:
            logger.warning(f"Unexpected error summarizing batch {index}: {e}")
            return [], _FAILED

        summaries = parse_batch_response(text)
        if len(summaries) < len(batch):
            logger.debug(
                f"Batch {index}: got {len(summaries)} summaries for {len(batch)} endpoints"
            )
        return summaries, _OK
