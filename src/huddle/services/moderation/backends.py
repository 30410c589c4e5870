"""
Generative text backends for message moderation.

A backend exposes one operation, ``generate(prompt, system_instructions)``.
The pipeline owns timeouts and ordering; backends only raise on failure.

PydanticAIBackend wraps one pydantic-ai model. Model names use the
pydantic-ai ``provider:model`` format (e.g. ``google-gla:gemini-2.0-flash``),
so the ordered backend list is plain configuration:

    LLM__MODERATION_MODELS=["google-gla:gemini-2.0-flash","openai:gpt-4o-mini"]
"""

from abc import ABC, abstractmethod

from loguru import logger
from pydantic_ai import Agent
from pydantic_ai.models import Model

from ...settings import LLMSettings, settings


class TextBackend(ABC):
    """One generative backend variant."""

    name: str = "backend"

    @abstractmethod
    async def generate(self, prompt: str, system_instructions: str) -> str:
        """Return the generated text or raise."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"

    def __str__(self) -> str:
        return self.name


def clean_output(text: str) -> str:
    """Strip whitespace and the quoting some models wrap rewrites in."""
    cleaned = text.strip()
    for quote in ('"""', '"', "“"):
        closing = "”" if quote == "“" else quote
        if len(cleaned) > 2 * len(quote) and cleaned.startswith(quote) and cleaned.endswith(closing):
            cleaned = cleaned[len(quote) : -len(closing)].strip()
            break
    return cleaned


class PydanticAIBackend(TextBackend):
    """
    Backend running a pydantic-ai Agent.

    Agents are created on first use per system prompt, so a missing provider
    key surfaces as a failed attempt rather than at startup.

    Example:
        backend = PydanticAIBackend("google-gla:gemini-2.0-flash")
        text = await backend.generate("Rewrite: ...", "You are ...")

        # Tests
        from pydantic_ai.models.test import TestModel
        backend = PydanticAIBackend(TestModel(custom_output_text="Hi."), name="test")
    """

    def __init__(
        self,
        model: str | Model,
        name: str | None = None,
        temperature: float | None = None,
    ):
        self.model = model
        self.name = name or (model if isinstance(model, str) else getattr(model, "model_name", type(model).__name__))
        self.temperature = temperature if temperature is not None else settings.llm.temperature
        self._agents: dict[str, Agent] = {}

    def _agent(self, system_instructions: str) -> Agent:
        agent = self._agents.get(system_instructions)
        if agent is None:
            agent = Agent(
                model=self.model,
                system_prompt=system_instructions,
                model_settings={"temperature": self.temperature},
            )
            self._agents[system_instructions] = agent
        return agent

    async def generate(self, prompt: str, system_instructions: str) -> str:
        agent = self._agent(system_instructions)
        result = await agent.run(prompt)
        text = clean_output(str(result.output or ""))
        if not text:
            raise ValueError(f"Empty response from {self.name}")
        logger.debug(f"Backend {self.name} produced {len(text)} chars")
        return text


def build_backends(llm_settings: LLMSettings | None = None) -> list[TextBackend]:
    """Ordered backend list from settings (first success wins)."""
    llm_settings = llm_settings or settings.llm
    return [
        PydanticAIBackend(model_name, temperature=llm_settings.temperature)
        for model_name in llm_settings.moderation_models
    ]
