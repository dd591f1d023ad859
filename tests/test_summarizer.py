"""Tests for batched endpoint summarization."""

import sys
import threading
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from restsum.exceptions import AIError
from restsum.models import SUMMARY_UNAVAILABLE, Endpoint
from restsum.summarizer import (
    EndpointSummarizer,
    PipelineState,
    build_batch_prompt,
    extract_relevant_code,
    make_batches,
    parse_batch_response,
    truncate_summary,
)


class FakeGenerator:
    """Answers every prompt with ``[n] Summary of <path>`` lines.

    Tracks calls, concurrency and start times for assertions.
    """

    def __init__(self, delay=0.0, fail_on=(), response=None):
        self.delay = delay
        self.fail_on = set(fail_on)
        self.response = response
        self.prompts = []
        self.starts = []
        self.kwargs = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def generate(self, prompt, *, temperature, max_tokens, timeout=None):
        with self._lock:
            call = len(self.prompts)
            self.prompts.append(prompt)
            self.starts.append(time.monotonic())
            self.kwargs.append({"temperature": temperature, "max_tokens": max_tokens, "timeout": timeout})
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if any(marker in prompt for marker in self.fail_on):
                raise AIError(f"service unavailable (call {call})")
            if self.response is not None:
                return self.response
            lines = []
            for line in prompt.split("\n"):
                if line.startswith("[") and "] " in line and not line.startswith("[N]"):
                    number, rest = line.split("] ", 1)
                    lines.append(f"{number}] Summary of {rest.split(' ', 1)[1]}")
            return "\n".join(lines)
        finally:
            with self._lock:
                self.in_flight -= 1


def make_endpoints(count, prefix="/items"):
    return [
        Endpoint("GET", f"{prefix}/{i}", "app.js", i + 1, raw_code=f"app.get('{prefix}/{i}', handler{i})")
        for i in range(count)
    ]


def summarizer_for(generator, **kwargs):
    kwargs.setdefault("request_interval", 0.0)
    return EndpointSummarizer(generator, **kwargs)


class TestParseBatchResponse:
    def test_bracketed_lines(self):
        text = "[1] Creates a new user\n[2] Deletes a user by id"
        assert parse_batch_response(text) == ["Creates a new user", "Deletes a user by id"]

    def test_index_inside_brackets_is_ignored(self):
        text = "[2] Second\n[1] First"
        assert parse_batch_response(text) == ["Second", "First"]

    def test_other_lines_skipped(self):
        text = "Here are your summaries:\n\n  [1] Lists users  \nnote: none\n[] \n]x\n[2] Gets a user"
        assert parse_batch_response(text) == ["Lists users", "Gets a user"]

    def test_empty_summary_skipped(self):
        assert parse_batch_response("[1]\n[2]   \n[3] Real one") == ["Real one"]

    def test_long_summary_truncated(self):
        long_text = "x" * 80
        (summary,) = parse_batch_response(f"[1] {long_text}")
        assert summary == "x" * 47 + "..."
        assert len(summary) == 50

    def test_empty_response(self):
        assert parse_batch_response("") == []


class TestTruncate:
    def test_short_unchanged(self):
        assert truncate_summary("Lists users") == "Lists users"

    def test_exact_limit_unchanged(self):
        assert truncate_summary("a" * 50) == "a" * 50

    def test_over_limit(self):
        assert truncate_summary("a" * 51) == "a" * 47 + "..."


class TestRelevantCode:
    def test_keyword_lines_preferred(self):
        code = "\n".join([
            "const x = 1;",
            "app.post('/users', createUser);",
            "function createUser(req, res) {",
            "  return res.json(user);",
            "  save(user);",
        ])
        assert extract_relevant_code(code) == (
            "app.post('/users', createUser);; function createUser(req, res) {; return res.json(user);"
        )

    def test_each_line_used_once(self):
        code = "def create_user(): return save()"
        assert extract_relevant_code(code) == "def create_user(): return save()"

    def test_comments_ignored(self):
        code = "# return cached\n// delete later\nx = 1"
        assert extract_relevant_code(code) == "# return cached"

    def test_fallback_to_first_line(self):
        assert extract_relevant_code("\n  x = 1\ny = 2") == "x = 1"

    def test_empty(self):
        assert extract_relevant_code("") == ""


class TestPrompt:
    def test_prompt_layout(self):
        batch = [
            Endpoint("POST", "/users", "a.js", 1, raw_code="app.post('/users', create)"),
            Endpoint("DELETE", "/users/:id", "a.js", 2, raw_code="app.delete('/users/:id', remove)"),
        ]
        prompt = build_batch_prompt(batch)

        assert prompt.startswith("Analyze these REST API endpoints.")
        assert "(max 50 chars)" in prompt
        assert "Format: [N] Summary\n\n" in prompt
        assert "[1] POST /users\nCode: app.post('/users', create)\n\n" in prompt
        assert "[2] DELETE /users/:id\nCode: app.delete('/users/:id', remove)\n\n" in prompt
        assert prompt.endswith("Summaries:")

    def test_no_code_line_for_empty_snippet(self):
        prompt = build_batch_prompt([Endpoint("GET", "/", "a.rb", 1)])
        assert "[1] GET /\n\nSummaries:" in prompt
        assert "Code:" not in prompt


class TestBatching:
    def test_twelve_into_three(self):
        endpoints = make_endpoints(12)
        batches = make_batches(endpoints, 5)
        assert [len(b) for b in batches] == [5, 5, 2]
        assert [e for b in batches for e in b] == endpoints

    def test_empty(self):
        assert make_batches([], 5) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            make_batches(make_endpoints(1), 0)

    @pytest.mark.parametrize("kwargs", [{"batch_size": 0}, {"max_concurrency": 0}])
    def test_invalid_summarizer_settings(self, kwargs):
        with pytest.raises(ValueError):
            EndpointSummarizer(FakeGenerator(), **kwargs)


class TestSummarize:
    def test_every_endpoint_gets_its_summary(self):
        generator = FakeGenerator()
        endpoints = make_endpoints(12)

        report = summarizer_for(generator).summarize(endpoints)

        assert len(generator.prompts) == 3
        assert [e.summary for e in endpoints] == [f"Summary of /items/{i}" for i in range(12)]
        assert report.batches == 3
        assert report.succeeded == 3
        assert report.failed == 0
        assert not report.timed_out

    def test_passes_sampling_settings(self):
        generator = FakeGenerator()
        summarizer_for(generator, temperature=0.2, max_tokens=256).summarize(make_endpoints(1))
        assert generator.kwargs[0]["temperature"] == 0.2
        assert generator.kwargs[0]["max_tokens"] == 256
        assert generator.kwargs[0]["timeout"] is None

    def test_positional_assignment(self):
        generator = FakeGenerator(response="[7] First thing\n[3] Second thing")
        endpoints = make_endpoints(2)

        summarizer_for(generator).summarize(endpoints)

        assert [e.summary for e in endpoints] == ["First thing", "Second thing"]

    def test_missing_summaries_get_sentinel(self):
        generator = FakeGenerator(response="[1] Only one")
        endpoints = make_endpoints(3)

        report = summarizer_for(generator).summarize(endpoints)

        assert [e.summary for e in endpoints] == ["Only one", SUMMARY_UNAVAILABLE, SUMMARY_UNAVAILABLE]
        assert report.succeeded == 1

    def test_failed_batch_does_not_abort_run(self, caplog):
        generator = FakeGenerator(fail_on=["/bad/"])
        good = make_endpoints(5, prefix="/good")
        bad = make_endpoints(2, prefix="/bad")

        with caplog.at_level("WARNING", logger="restsum"):
            report = summarizer_for(generator).summarize(good + bad)

        assert [e.summary for e in good] == [f"Summary of /good/{i}" for i in range(5)]
        assert [e.summary for e in bad] == [SUMMARY_UNAVAILABLE, SUMMARY_UNAVAILABLE]
        assert report.succeeded == 1
        assert report.failed == 1
        assert "Failed to summarize batch 1" in caplog.text

    def test_unexpected_error_treated_as_failure(self):
        class Broken:
            def generate(self, prompt, **kwargs):
                raise RuntimeError("boom")

        endpoints = make_endpoints(2)
        report = summarizer_for(Broken()).summarize(endpoints)

        assert [e.summary for e in endpoints] == [SUMMARY_UNAVAILABLE, SUMMARY_UNAVAILABLE]
        assert report.failed == 1

    def test_concurrency_is_bounded(self):
        generator = FakeGenerator(delay=0.1)
        summarizer = summarizer_for(generator, batch_size=1, max_concurrency=3)

        summarizer.summarize(make_endpoints(9))

        assert len(generator.prompts) == 9
        assert generator.max_in_flight <= 3
        assert generator.max_in_flight >= 2

    def test_requests_are_staggered(self):
        generator = FakeGenerator()
        summarizer = summarizer_for(generator, batch_size=1, request_interval=0.1)

        started = time.monotonic()
        summarizer.summarize(make_endpoints(3))

        offsets = sorted(start - started for start in generator.starts)
        assert offsets[0] < 0.1
        assert offsets[1] >= 0.09
        assert offsets[2] >= 0.19

    def test_deadline_abandons_pending_batches(self, caplog):
        generator = FakeGenerator()
        summarizer = summarizer_for(generator, batch_size=1, request_interval=0.5)
        endpoints = make_endpoints(2)

        with caplog.at_level("WARNING", logger="restsum"):
            report = summarizer.summarize(endpoints, timeout=0.05)
        time.sleep(0.6)

        assert endpoints[0].summary == "Summary of /items/0"
        assert endpoints[1].summary == ""
        assert report.succeeded == 1
        assert report.abandoned == 1
        assert report.timed_out
        assert "deadline exceeded" in caplog.text
        assert len(generator.prompts) == 1

    def test_deadline_discards_late_response(self):
        generator = FakeGenerator(delay=0.4, response="[1] Late summary")
        summarizer = summarizer_for(generator, batch_size=1)
        endpoints = make_endpoints(1)

        report = summarizer.summarize(endpoints, timeout=0.1)
        assert len(generator.prompts) == 1
        time.sleep(0.5)

        # The request finished after the deadline; its result is not applied
        assert generator.in_flight == 0
        assert endpoints[0].summary == ""
        assert report.abandoned == 1
        assert report.succeeded == 0
        assert report.failed == 0

    def test_timeout_forwarded_to_generator(self):
        generator = FakeGenerator()
        summarizer_for(generator).summarize(make_endpoints(1), timeout=30)
        assert 0 < generator.kwargs[0]["timeout"] <= 30

    def test_state_transitions(self):
        summarizer = summarizer_for(FakeGenerator())
        assert summarizer.state == PipelineState.IDLE
        summarizer.summarize(make_endpoints(2))
        assert summarizer.state == PipelineState.DONE

    def test_empty_input(self):
        generator = FakeGenerator()
        summarizer = summarizer_for(generator)

        report = summarizer.summarize([])

        assert report.batches == 0
        assert generator.prompts == []
        assert summarizer.state == PipelineState.DONE
