"""End-to-end analysis: scan, consult the cache, summarize the misses."""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from restsum.ai import AnthropicGenerator, TextGenerator
from restsum.cache import ResultCache
from restsum.config import Config
from restsum.exceptions import CacheError, ConfigError, ScanError
from restsum.logger import get_logger
from restsum.models import SUMMARY_UNAVAILABLE, Endpoint
from restsum.scanner import EndpointScanner
from restsum.summarizer import EndpointSummarizer, SummaryReport

logger = get_logger()


@dataclass
class AnalysisResult:
    root: Path
    endpoints: List[Endpoint] = field(default_factory=list)
    files_scanned: int = 0
    cached: int = 0
    generated: int = 0
    failed: int = 0
    report: Optional[SummaryReport] = None
    elapsed: float = 0.0

    @property
    def cache_ratio(self) -> int:
        """Percentage of endpoints served from the cache."""
        if not self.endpoints:
            return 0
        return self.cached * 100 // len(self.endpoints)


def open_cache(config: Config) -> Optional[ResultCache]:
    """Open the summary cache, or return None (with a warning) if it can't be."""
    try:
        return ResultCache(config.cache.path, expiration=config.cache.expiration)
    except CacheError as e:
        logger.warning(f"Could not initialize cache, continuing without it: {e}")
        return None


def run_analysis(
    root: Path,
    config: Config,
    api_key: str = "",
    use_cache: bool = True,
    timeout: Optional[float] = None,
    generator: Optional[TextGenerator] = None,
    cache: Optional[ResultCache] = None,
) -> AnalysisResult:
    """Scan ``root`` and attach a summary to every endpoint found.

    Args:
        root: Directory to scan.
        config: Loaded configuration.
        api_key: Credential for the default Anthropic generator.
        use_cache: Read and write the summary cache.
        timeout: Deadline for summarization; defaults to the configured one.
        generator: Text generator to use instead of the Anthropic one.
        cache: Cache to use instead of the configured one.

    Raises:
        ScanError: if ``root`` is not a directory or the walk fails.
        ConfigError: if no generator can be built for lack of an API key
            or a setting is out of range.
    """
    start = time.monotonic()
    root = Path(root).resolve()
    if not root.is_dir():
        raise ScanError(f"Directory does not exist: {root}")
    config.validate()
    if generator is None and not api_key:
        raise ConfigError(
            f"API key not set. Run 'restsum config set api-key YOUR_KEY' "
            f"or export {config.ai.api_key_env}"
        )

    scanner = EndpointScanner(exclude=config.exclude)
    endpoints = scanner.scan(root)
    result = AnalysisResult(root=root, endpoints=endpoints, files_scanned=scanner.files_scanned)
    if not endpoints:
        result.elapsed = time.monotonic() - start
        return result

    if not use_cache:
        cache = None
    elif cache is None and config.cache.enabled:
        cache = open_cache(config)

    needs_summary = []
    for endpoint in endpoints:
        summary = cache.lookup_endpoint(endpoint) if cache is not None else None
        if summary is not None:
            endpoint.summary = summary
            result.cached += 1
        else:
            needs_summary.append(endpoint)

    if result.cached:
        logger.info(f"Using {result.cached} cached summaries")

    if needs_summary:
        if generator is None:
            generator = AnthropicGenerator(api_key, model=config.ai.model)
        summarizer = EndpointSummarizer(
            generator,
            batch_size=config.summary.batch_size,
            max_concurrency=config.summary.max_concurrency,
            request_interval=config.summary.request_interval,
            temperature=config.ai.temperature,
            max_tokens=config.ai.max_tokens,
        )
        logger.info(f"Generating summaries for {len(needs_summary)} new endpoints...")
        result.report = summarizer.summarize(
            needs_summary,
            timeout=timeout if timeout is not None else config.summary.timeout,
        )

        for endpoint in needs_summary:
            if endpoint.has_summary:
                result.generated += 1
            elif endpoint.summary == SUMMARY_UNAVAILABLE:
                result.failed += 1

        if cache is not None:
            _store_summaries(cache, needs_summary)

    result.elapsed = time.monotonic() - start
    return result


def _store_summaries(cache: ResultCache, endpoints: List[Endpoint]) -> None:
    for endpoint in endpoints:
        if not endpoint.has_summary:
            continue
        try:
            cache.store_endpoint(endpoint)
        except CacheError as e:
            logger.warning(f"Could not cache summary for {endpoint.method} {endpoint.path}: {e}")
