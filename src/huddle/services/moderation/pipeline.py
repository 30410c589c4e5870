"""
Content moderation pipeline.

Converts raw message text into an organization-safe variant:

1. Compute a soft word-count band (by default 90-100% of the input) and
   render it into the prompt
2. Try the ordered backend list through ``try_in_order``: each attempt has a
   hard timeout, auth/quota status codes stop the walk, the first non-empty
   rewrite wins
3. The whole chain is bounded by a total timeout
4. Anything else falls through to the deterministic rewrite

``sanitize`` never raises for backend problems and never returns an empty
rewrite for non-empty input. Degradation is logged, not surfaced.
"""

import asyncio
import math
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field

from ...errors import ModerationDegraded
from ...settings import LLMSettings, ModerationSettings, settings
from ...utils.retry import try_in_order
from .backends import TextBackend, build_backends
from .fallback import deterministic_rewrite
from .prompts import ToneDirective, render_prompt, system_rules, tone_instruction


class ModerationResult(BaseModel):
    """Outcome of one sanitize call."""

    sanitized_text: str = Field(..., description="Organization-safe variant")
    applied_tone: Optional[str] = Field(
        default=None, description="Tone applied by a backend (None when the fallback ran)"
    )
    succeeded: bool = Field(..., description="True when a generative backend produced the text")
    diagnostic: Optional[str] = Field(default=None, description="Why the fallback was used")
    backend: Optional[str] = Field(default=None, description="Backend that produced the text")


def count_words(text: str) -> int:
    return len(text.split())


def target_word_band(word_count: int, min_ratio: float) -> tuple[int, int]:
    """(min_words, max_words) for a rewrite of a ``word_count``-word message."""
    return math.floor(word_count * min_ratio), word_count


class ModerationPipeline:
    """
    Sanitize text through generative backends with a deterministic fallback.

    Example:
        pipeline = ModerationPipeline()
        result = await pipeline.sanitize("hello idiot", tone="polite")
        result.sanitized_text  # never empty for non-empty input
    """

    def __init__(
        self,
        backends: list[TextBackend] | None = None,
        llm_settings: LLMSettings | None = None,
        moderation_settings: ModerationSettings | None = None,
    ):
        self.llm_settings = llm_settings or settings.llm
        self.moderation_settings = moderation_settings or settings.moderation
        if backends is None:
            backends = build_backends(self.llm_settings) if self.moderation_settings.enabled else []
        self.backends = backends

    def build_prompt(
        self,
        text: str,
        tone: ToneDirective,
        instruction_override: str | None = None,
    ) -> tuple[str, str]:
        """Return (prompt, system_instructions) for a backend call."""
        word_count = count_words(text)
        min_words, max_words = target_word_band(word_count, self.moderation_settings.min_length_ratio)
        instruction = instruction_override.strip() if instruction_override else tone_instruction(tone)
        prompt = render_prompt(
            text,
            instruction=instruction,
            word_count=word_count,
            min_words=min_words,
            max_words=max_words,
        )
        return prompt, system_rules()

    def _is_fatal(self, error: BaseException) -> bool:
        status_code = getattr(error, "status_code", None)
        return status_code in self.moderation_settings.abort_status_codes

    async def _generate(
        self, text: str, tone: ToneDirective, instruction_override: str | None
    ) -> tuple[str, str]:
        if not self.backends:
            raise ModerationDegraded("no generative backends configured")

        prompt, system_instructions = self.build_prompt(text, tone, instruction_override)

        try:
            outcome = await asyncio.wait_for(
                try_in_order(
                    self.backends,
                    lambda backend: backend.generate(prompt, system_instructions),
                    timeout=self.llm_settings.request_timeout,
                    accept=lambda output: bool(output and output.strip()),
                    is_fatal=self._is_fatal,
                ),
                timeout=self.llm_settings.total_timeout,
            )
        except asyncio.TimeoutError:
            raise ModerationDegraded(
                f"backend chain exceeded {self.llm_settings.total_timeout}s"
            )

        if not outcome.succeeded:
            reason = "backend chain aborted" if outcome.aborted else "all backends failed"
            raise ModerationDegraded(f"{reason}: {outcome.last_error}")

        word_count = count_words(outcome.value)
        logger.info(
            f"Sanitized with {outcome.candidate} ({tone.value}): "
            f"{count_words(text)} -> {word_count} words"
        )
        return outcome.value.strip(), str(outcome.candidate)

    async def sanitize(
        self,
        text: str,
        tone: str | ToneDirective | None = None,
        instruction_override: str | None = None,
    ) -> ModerationResult:
        """
        Produce the organization-safe variant of ``text``.

        Args:
            text: Raw message text
            tone: Tone directive (defaults to MODERATION__DEFAULT_TONE)
            instruction_override: Replaces the tone instruction in the prompt

        Returns:
            ModerationResult; ``succeeded`` is False when the fallback ran
        """
        directive = ToneDirective.parse(tone or self.moderation_settings.default_tone)

        if not text.strip():
            return ModerationResult(
                sanitized_text=text, succeeded=False, diagnostic="empty input"
            )

        try:
            sanitized, backend = await self._generate(text, directive, instruction_override)
            return ModerationResult(
                sanitized_text=sanitized,
                applied_tone=directive.value,
                succeeded=True,
                backend=backend,
            )
        except ModerationDegraded as e:
            logger.warning(f"Moderation degraded, using fallback: {e.message}")
            diagnostic = e.message
        except Exception as e:
            logger.exception(f"Unexpected moderation failure, using fallback: {e}")
            diagnostic = f"unexpected error: {type(e).__name__}"

        return ModerationResult(
            sanitized_text=deterministic_rewrite(text),
            succeeded=False,
            diagnostic=diagnostic,
        )

    def sanitize_offline(self, text: str) -> ModerationResult:
        """Deterministic rewrite only (no backend calls)."""
        return ModerationResult(
            sanitized_text=deterministic_rewrite(text) if text.strip() else text,
            succeeded=False,
            diagnostic="offline",
        )
