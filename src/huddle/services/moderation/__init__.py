"""
Content moderation: generative rewrite with a deterministic fallback.

See pipeline.ModerationPipeline for the contract and fallback for the four
offline rewrite steps.
"""

from .backends import PydanticAIBackend, TextBackend, build_backends
from .fallback import (
    deterministic_rewrite,
    detect_intent,
    mask_contacts,
    normalize_text,
    rewrite_clauses,
)
from .pipeline import ModerationPipeline, ModerationResult, count_words, target_word_band
from .prompts import ToneDirective

__all__ = [
    "ModerationPipeline",
    "ModerationResult",
    "ToneDirective",
    "TextBackend",
    "PydanticAIBackend",
    "build_backends",
    "count_words",
    "target_word_band",
    "deterministic_rewrite",
    "detect_intent",
    "rewrite_clauses",
    "mask_contacts",
    "normalize_text",
]
