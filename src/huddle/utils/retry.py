"""
Ordered fallback helper.

``try_in_order`` walks an ordered list of candidates (backend variants,
endpoints, ...) and returns the first acceptable result. The policy
(per-attempt timeout, what counts as success, which errors stop the walk)
is passed in, so the candidate list stays plain configuration.

Example:
    outcome = await try_in_order(
        backends,
        lambda backend: backend.generate(prompt, system),
        timeout=10.0,
        accept=lambda text: bool(text.strip()),
        is_fatal=lambda exc: getattr(exc, "status_code", None) == 401,
    )
    if outcome.succeeded:
        print(outcome.value, outcome.candidate)
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Iterable, TypeVar

from loguru import logger

C = TypeVar("C")
T = TypeVar("T")


@dataclass
class AttemptError:
    """A failed attempt: which candidate and why."""

    candidate: object
    error: str


@dataclass
class AttemptOutcome(Generic[T]):
    """Result of walking the candidate list."""

    value: T | None = None
    candidate: object | None = None
    errors: list[AttemptError] = field(default_factory=list)
    aborted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.candidate is not None

    @property
    def last_error(self) -> str | None:
        return self.errors[-1].error if self.errors else None


async def try_in_order(
    candidates: Iterable[C],
    call: Callable[[C], Awaitable[T]],
    *,
    timeout: float | None = None,
    accept: Callable[[T], bool] | None = None,
    is_fatal: Callable[[BaseException], bool] | None = None,
) -> AttemptOutcome[T]:
    """
    Call each candidate in order and stop at the first accepted result.

    Args:
        candidates: Ordered candidates
        call: Coroutine factory invoked with one candidate
        timeout: Per-attempt timeout in seconds (None = no timeout)
        accept: Predicate on the result; rejected results count as failures
        is_fatal: Predicate on an exception; True stops the walk immediately

    Returns:
        AttemptOutcome with the winning value/candidate, or the collected errors
    """
    outcome: AttemptOutcome[T] = AttemptOutcome()

    for candidate in candidates:
        try:
            if timeout is not None:
                value = await asyncio.wait_for(call(candidate), timeout=timeout)
            else:
                value = await call(candidate)
        except asyncio.TimeoutError:
            message = f"timed out after {timeout}s"
            logger.warning(f"Candidate {candidate} {message}")
            outcome.errors.append(AttemptError(candidate, message))
            continue
        except Exception as e:
            logger.warning(f"Candidate {candidate} failed: {e}")
            outcome.errors.append(AttemptError(candidate, str(e) or type(e).__name__))
            if is_fatal is not None and is_fatal(e):
                logger.warning(f"Stopping after {candidate}: error is not retryable")
                outcome.aborted = True
                break
            continue

        if accept is not None and not accept(value):
            logger.warning(f"Candidate {candidate} returned an unacceptable result")
            outcome.errors.append(AttemptError(candidate, "unacceptable result"))
            continue

        outcome.value = value
        outcome.candidate = candidate
        return outcome

    return outcome
