"""
Ordered model fallback for AI calls.

A call walks a list of ModelDescriptor entries until one returns usable
output. Each attempt has a hard timeout; provider errors, timeouts, empty
responses, unparseable JSON and failed validation all move on to the next
model. Adding a model is a change to the list, not to calling code.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, TYPE_CHECKING

from ..ai_response_parser import parse_ai_response
from ..prompt_sanitizer import detect_output_leakage
from .base import LLMProvider, ProviderError

if TYPE_CHECKING:
    from ..api_usage import ApiUsageLogger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelDescriptor:
    """One entry in a fallback list."""
    name: str
    max_tokens: int = 4096
    temperature: float = 0.2
    timeout_seconds: float = 120.0


@dataclass
class AttemptResult:
    """Successful outcome of attempt_call."""
    data: Any
    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    attempts: int = 1


class AllModelsFailedError(Exception):
    """Every model in the fallback list failed."""

    def __init__(self, section: str, errors: list[str]):
        self.section = section
        self.errors = errors
        super().__init__(f"All models failed for {section}: {'; '.join(errors)}")


@dataclass
class CallContext:
    """Accounting context attached to every attempt."""
    usage_logger: "ApiUsageLogger | None" = None
    content_id: int | None = None
    user_id: int | None = None
    api_name: str = "openrouter"
    extra: dict = field(default_factory=dict)


def build_models(
    names: list[str],
    max_tokens: int = 4096,
    temperature: float = 0.2,
    timeout_seconds: float = 120.0,
) -> list[ModelDescriptor]:
    """Build descriptors sharing one budget from a list of model names."""
    return [ModelDescriptor(name, max_tokens, temperature, timeout_seconds) for name in names]


def _log_attempt(
    context: CallContext | None,
    section: str,
    model: str,
    status: str,
    started: float,
    input_tokens: int = 0,
    output_tokens: int = 0,
    error: str | None = None,
):
    if context is None or context.usage_logger is None:
        return
    context.usage_logger.log(
        api_name=context.api_name,
        operation=section,
        status=status,
        model_name=model,
        tokens_input=input_tokens,
        tokens_output=output_tokens,
        response_time_ms=int((time.monotonic() - started) * 1000),
        content_id=context.content_id,
        user_id=context.user_id,
        error_message=error,
    )


async def attempt_call(
    provider: LLMProvider,
    models: list[ModelDescriptor],
    system_prompt: str | None,
    user_prompt: str,
    section: str,
    context: CallContext | None = None,
    parse_json: bool = True,
    validate: Callable[[Any], Any] | None = None,
) -> AttemptResult:
    """
    Run one AI call with fallback across ``models``.

    Args:
        provider: The LLM provider
        models: Ordered fallback list (first is primary)
        system_prompt: System prompt
        user_prompt: User prompt (already sanitized and anchored)
        section: Name used for logs and usage accounting
        context: Usage accounting context
        parse_json: Parse the response as JSON (with fence stripping and repair)
        validate: Optional callable mapping parsed data to the final value;
            raising ValueError rejects the response and falls back

    Returns:
        AttemptResult from the first model that produced usable output

    Raises:
        AllModelsFailedError: If every model failed
    """
    errors: list[str] = []

    for index, descriptor in enumerate(models, start=1):
        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                provider.complete_async(
                    user_prompt=user_prompt,
                    system_prompt=system_prompt,
                    model=descriptor.name,
                    max_tokens=descriptor.max_tokens,
                    temperature=descriptor.temperature,
                    json_mode=parse_json,
                ),
                timeout=descriptor.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = f"{descriptor.name}: timed out after {descriptor.timeout_seconds}s"
            errors.append(error)
            _log_attempt(context, section, descriptor.name, "timeout", started, error=error)
            logger.warning(f"[{section}] {error}, trying next model")
            continue
        except ProviderError as e:
            error = f"{descriptor.name}: {e}"
            errors.append(error)
            _log_attempt(context, section, descriptor.name, "error", started, error=error)
            logger.warning(f"[{section}] {error}, trying next model")
            continue

        text = (response.text or "").strip()
        if not text:
            error = f"{descriptor.name}: empty response"
            errors.append(error)
            _log_attempt(context, section, descriptor.name, "empty", started,
                         response.input_tokens, response.output_tokens, error)
            logger.warning(f"[{section}] {error}, trying next model")
            continue

        data: Any = text
        if parse_json:
            parsed = parse_ai_response(text)
            if not parsed.success:
                error = f"{descriptor.name}: {parsed.error}"
                errors.append(error)
                _log_attempt(context, section, descriptor.name, "parse_error", started,
                             response.input_tokens, response.output_tokens, error)
                logger.warning(f"[{section}] {error}, trying next model")
                continue
            data = parsed.data

        if validate is not None:
            try:
                data = validate(data)
            except ValueError as e:
                error = f"{descriptor.name}: invalid output ({e})"
                errors.append(error)
                _log_attempt(context, section, descriptor.name, "invalid", started,
                             response.input_tokens, response.output_tokens, error)
                logger.warning(f"[{section}] {error}, trying next model")
                continue

        detect_output_leakage(text, section)
        _log_attempt(context, section, response.model or descriptor.name, "success", started,
                     response.input_tokens, response.output_tokens)
        if index > 1:
            logger.info(f"[{section}] succeeded with fallback model {descriptor.name}")
        return AttemptResult(
            data=data,
            text=text,
            model=response.model or descriptor.name,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            attempts=index,
        )

    raise AllModelsFailedError(section, errors)
