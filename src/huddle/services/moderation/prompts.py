"""
Moderator agent schema.

The system rules, tone instructions and prompt template live in
``schemas/agents/message-moderator.yaml``: ``description`` is the system
prompt and ``json_schema_extra`` carries the rest.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from ...errors import ValidationFailed

MODERATOR_SCHEMA_PATH = (
    Path(__file__).parent.parent.parent / "schemas" / "agents" / "message-moderator.yaml"
)


class ToneDirective(str, Enum):
    PROFESSIONAL = "professional"
    POLITE = "polite"
    FORMAL = "formal"
    AUTO = "auto"

    @classmethod
    def parse(cls, value: "str | ToneDirective") -> "ToneDirective":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(t.value for t in cls)
            raise ValidationFailed(f"Unknown tone '{value}' (expected one of: {choices})")


@lru_cache(maxsize=1)
def load_moderator_schema() -> dict[str, Any]:
    """Load and cache the moderator agent schema."""
    if not MODERATOR_SCHEMA_PATH.exists():
        raise FileNotFoundError(f"Moderator schema not found: {MODERATOR_SCHEMA_PATH}")
    with open(MODERATOR_SCHEMA_PATH) as f:
        return yaml.safe_load(f)


def system_rules() -> str:
    return load_moderator_schema()["description"].strip()


def tone_instruction(tone: ToneDirective) -> str:
    return load_moderator_schema()["json_schema_extra"]["tones"][tone.value]


def render_prompt(
    text: str,
    instruction: str,
    word_count: int,
    min_words: int,
    max_words: int,
) -> str:
    template = load_moderator_schema()["json_schema_extra"]["prompt_template"]
    min_percent = round(100 * min_words / word_count) if word_count else 100
    return template.format(
        tone_instruction=instruction,
        word_count=word_count,
        min_words=min_words,
        max_words=max_words,
        min_percent=min_percent,
        text=text,
    ).strip()
