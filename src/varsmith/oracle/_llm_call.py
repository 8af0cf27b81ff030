"""Guarded litellm completion shared by the oracle adapters.

Every model in a chain gets its own circuit breaker, so an outage at
one provider lets the chain fall through to the next. Rate limits are
retried here and never count against a breaker.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import litellm
from circuitbreaker import (  # pyright: ignore[reportUnknownVariableType]
    CircuitBreaker,
    CircuitBreakerError,
)
from litellm.exceptions import RateLimitError as LitellmRateLimitError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from varsmith.constants import (
    CB_LLM_FAILURE_THRESHOLD,
    CB_LLM_RECOVERY_TIMEOUT,
    LLM_MAX_OUTPUT_TOKENS,
    RETRY_INITIAL_WAIT,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_WAIT,
)

logger = logging.getLogger(__name__)

# litellm stubs have partially unknown types
if TYPE_CHECKING:
    _acompletion: Callable[..., Coroutine[Any, Any, Any]]
else:
    _acompletion = litellm.acompletion

_TRUNCATED_FINISH_REASONS = frozenset({"length", "max_tokens"})


@dataclass(frozen=True)
class CompletionResult:
    """Oracle text plus token accounting from one guarded completion.

    ``truncated`` is set when the provider stopped at the output limit;
    a cut-off candidate will usually fail the syntax check.
    """

    content: str
    model: str
    input_tokens: int
    output_tokens: int
    truncated: bool = False


def _counts_as_breaker_failure(
    thrown_type: type, thrown_value: BaseException
) -> bool:
    return not issubclass(thrown_type, LitellmRateLimitError)


_breaker_registry: dict[str, CircuitBreaker] = {}  # pyright: ignore[reportUnknownVariableType]


def _get_breaker(model: str) -> CircuitBreaker:  # pyright: ignore[reportUnknownParameterType]
    breaker = _breaker_registry.get(model)
    if breaker is None:
        breaker = CircuitBreaker(  # pyright: ignore[reportUnknownMemberType]
            failure_threshold=CB_LLM_FAILURE_THRESHOLD,
            recovery_timeout=CB_LLM_RECOVERY_TIMEOUT,
            expected_exception=_counts_as_breaker_failure,
            name=f"oracle_{model}",
        )
        _breaker_registry[model] = breaker
    return breaker


def breaker_states(models: list[str]) -> dict[str, str]:
    """``open``/``closed`` per model; models never called report closed."""
    states: dict[str, str] = {}
    for model in models:
        breaker = _breaker_registry.get(model)
        opened = breaker is not None and breaker.opened  # pyright: ignore[reportUnknownMemberType]
        states[model] = "open" if opened else "closed"
    return states


def _completion_kwargs(
    model: str,
    messages: list[dict[str, Any]],
    timeout: float,
    json_mode: bool,
) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "timeout": timeout,
        "max_tokens": LLM_MAX_OUTPUT_TOKENS,
    }
    if json_mode:
        # Not every provider honours this; callers still extract leniently
        kwargs["response_format"] = {"type": "json_object"}
    return kwargs


def _to_result(model: str, response: Any) -> CompletionResult:
    choice: Any = response.choices[0]
    usage: Any = getattr(response, "usage", None)
    finish_reason = str(getattr(choice, "finish_reason", "") or "")
    result = CompletionResult(
        content=str(choice.message.content or ""),
        model=model,
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        truncated=finish_reason in _TRUNCATED_FINISH_REASONS,
    )
    if result.truncated:
        logger.warning(
            "event=oracle_output_truncated model=%s output_tokens=%d",
            model,
            result.output_tokens,
        )
    logger.debug(
        "event=oracle_completion model=%s input_tokens=%d output_tokens=%d",
        model,
        result.input_tokens,
        result.output_tokens,
    )
    return result


@retry(
    stop=stop_after_attempt(RETRY_MAX_ATTEMPTS),
    wait=wait_exponential_jitter(
        initial=RETRY_INITIAL_WAIT, max=RETRY_MAX_WAIT
    ),
    retry=retry_if_exception_type(LitellmRateLimitError),
    reraise=True,
)
async def guarded_llm_call(
    model: str,
    messages: list[dict[str, Any]],
    timeout: float,
    *,
    json_mode: bool = True,
) -> CompletionResult:
    """Breaker-protected completion with jittered retry on 429.

    Raises ``CircuitBreakerError`` without calling the provider while
    the breaker for ``model`` is open.
    """
    breaker = _get_breaker(model)
    if breaker.opened:  # pyright: ignore[reportUnknownMemberType]
        raise CircuitBreakerError(breaker)  # pyright: ignore[reportUnknownArgumentType]
    with breaker:  # pyright: ignore[reportUnknownMemberType]
        response: Any = await _acompletion(
            **_completion_kwargs(model, messages, timeout, json_mode)
        )
    return _to_result(model, response)
