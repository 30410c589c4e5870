"""
Tests for ModerationPipeline.

Backends are stubbed so ordering, timeouts and abort codes can be driven
directly; the fallback must take over whenever the chain does not produce
an acceptable rewrite.
"""

import asyncio

import pytest

from huddle.errors import ValidationFailed
from huddle.services.moderation import (
    ModerationPipeline,
    TextBackend,
    count_words,
    deterministic_rewrite,
    target_word_band,
)
from huddle.settings import LLMSettings, ModerationSettings


class StatusError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class StubBackend(TextBackend):
    def __init__(self, name, reply=None, error=None, delay=0.0):
        self.name = name
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate(self, prompt, system_instructions):
        self.calls.append((prompt, system_instructions))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply


def make_pipeline(*backends, request_timeout=1.0, total_timeout=5.0):
    return ModerationPipeline(
        backends=list(backends),
        llm_settings=LLMSettings(request_timeout=request_timeout, total_timeout=total_timeout),
        moderation_settings=ModerationSettings(),
    )


TEXT = "this report is late again and nobody told me why"


class TestWordBand:
    def test_count_words(self):
        assert count_words("  one two   three ") == 3

    def test_band(self):
        """The band is floor(90%) to 100% of the original word count."""
        assert target_word_band(10, 0.9) == (9, 10)
        assert target_word_band(3, 0.9) == (2, 3)


@pytest.mark.asyncio
class TestBackendChain:
    async def test_first_backend_wins(self):
        """A successful first backend is used and the rest are not called."""
        primary = StubBackend("primary", reply="This report is late again.")
        secondary = StubBackend("secondary", reply="unused")
        result = await make_pipeline(primary, secondary).sanitize(TEXT)

        assert result.succeeded
        assert result.sanitized_text == "This report is late again."
        assert result.applied_tone == "professional"
        assert result.backend == "primary"
        assert secondary.calls == []

    async def test_falls_through_failures(self):
        """A failing backend is skipped in favour of the next one."""
        broken = StubBackend("broken", error=RuntimeError("boom"))
        secondary = StubBackend("secondary", reply="Rewritten.")
        result = await make_pipeline(broken, secondary).sanitize(TEXT)

        assert result.succeeded
        assert result.backend == "secondary"
        assert len(broken.calls) == 1

    async def test_empty_reply_rejected(self):
        """Whitespace-only output counts as a failed attempt."""
        blank = StubBackend("blank", reply="   ")
        secondary = StubBackend("secondary", reply="Rewritten.")
        result = await make_pipeline(blank, secondary).sanitize(TEXT)
        assert result.backend == "secondary"

    async def test_abort_status_stops_chain(self):
        """Quota errors are shared by every variant, so the chain stops."""
        limited = StubBackend("limited", error=StatusError(429))
        secondary = StubBackend("secondary", reply="unused")
        result = await make_pipeline(limited, secondary).sanitize(TEXT)

        assert not result.succeeded
        assert result.applied_tone is None
        assert "aborted" in result.diagnostic
        assert result.sanitized_text == deterministic_rewrite(TEXT)
        assert secondary.calls == []

    async def test_server_error_does_not_abort(self):
        """Other status codes only fail the one attempt."""
        flaky = StubBackend("flaky", error=StatusError(500))
        secondary = StubBackend("secondary", reply="Rewritten.")
        result = await make_pipeline(flaky, secondary).sanitize(TEXT)
        assert result.backend == "secondary"

    async def test_attempt_timeout(self):
        """A slow backend is abandoned after the per-attempt timeout."""
        slow = StubBackend("slow", reply="too late", delay=1.0)
        fast = StubBackend("fast", reply="Rewritten.")
        result = await make_pipeline(slow, fast, request_timeout=0.05).sanitize(TEXT)
        assert result.backend == "fast"

    async def test_total_timeout_uses_fallback(self):
        """The whole chain is bounded; exceeding it degrades to the fallback."""
        slow = StubBackend("slow", reply="too late", delay=1.0)
        pipeline = make_pipeline(slow, request_timeout=0.5, total_timeout=0.05)
        result = await pipeline.sanitize(TEXT)

        assert not result.succeeded
        assert "exceeded" in result.diagnostic
        assert result.sanitized_text == deterministic_rewrite(TEXT)

    async def test_all_backends_fail(self):
        """Every failure exhausted still yields a non-empty rewrite."""
        pipeline = make_pipeline(
            StubBackend("a", error=RuntimeError("down")),
            StubBackend("b", error=RuntimeError("down")),
        )
        result = await pipeline.sanitize("hello idiot, call me at 555-123-4567")

        assert not result.succeeded
        assert "all backends failed" in result.diagnostic
        assert result.sanitized_text == (
            "Hello, I have some concerns about this. Call me at [contact number hidden]."
        )

    async def test_no_backends(self):
        """Without backends the fallback runs directly."""
        result = await make_pipeline().sanitize("shut up")
        assert result.sanitized_text == "I would prefer to revisit this later."
        assert result.diagnostic == "no generative backends configured"


@pytest.mark.asyncio
class TestPrompt:
    async def test_prompt_carries_word_band_and_rules(self):
        """The prompt states the word band; system rules travel separately."""
        backend = StubBackend("primary", reply="Rewritten.")
        await make_pipeline(backend).sanitize(TEXT)

        prompt, system = backend.calls[0]
        assert "has 10 words" in prompt
        assert "between 9 and 10 words" in prompt
        assert TEXT in prompt
        assert "STRICT RULES" in system

    async def test_tone_instruction(self):
        """The tone directive selects the instruction."""
        backend = StubBackend("primary", reply="Rewritten.")
        result = await make_pipeline(backend).sanitize(TEXT, tone="polite")

        assert "please and thank you" in backend.calls[0][0]
        assert result.applied_tone == "polite"

    async def test_instruction_override(self):
        """An override replaces the tone instruction."""
        backend = StubBackend("primary", reply="Rewritten.")
        await make_pipeline(backend).sanitize(TEXT, instruction_override="Be brief.")

        prompt = backend.calls[0][0]
        assert prompt.startswith("Be brief.")
        assert "standard professional corporate tone" not in prompt


@pytest.mark.asyncio
class TestInputHandling:
    async def test_unknown_tone(self):
        """Unknown tones are rejected before any backend call."""
        backend = StubBackend("primary", reply="Rewritten.")
        with pytest.raises(ValidationFailed):
            await make_pipeline(backend).sanitize(TEXT, tone="sarcastic")
        assert backend.calls == []

    async def test_empty_input_returned_as_is(self):
        result = await make_pipeline(StubBackend("primary", reply="x")).sanitize("   ")
        assert result.sanitized_text == "   "
        assert result.diagnostic == "empty input"

    async def test_unexpected_backend_bug_uses_fallback(self):
        """Errors outside the chain are logged and absorbed too."""
        pipeline = make_pipeline(StubBackend("primary", reply="x"))

        def broken_prompt(*args, **kwargs):
            raise KeyError("prompt_template")

        pipeline.build_prompt = broken_prompt
        result = await pipeline.sanitize("shut up")

        assert not result.succeeded
        assert result.diagnostic == "unexpected error: KeyError"
        assert result.sanitized_text == "I would prefer to revisit this later."

    async def test_sanitize_offline(self):
        result = make_pipeline().sanitize_offline("gonna be late")
        assert result.sanitized_text == "Going to be late."
        assert result.diagnostic == "offline"
