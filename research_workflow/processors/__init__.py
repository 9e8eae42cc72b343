"""Step processor infrastructure.

This module provides the base infrastructure for all workflow steps:
- BaseStepProcessor abstract class: Contract for all step processors
- MarketDataStepProcessor: Base for steps that read market data
- Input guard decorator: Re-validate inputs before a step body runs
- Error handling decorator: Graceful error capture into a failed outcome
- Logging decorator: Automatic execution logging
- Retry decorator: Automatic retry with exponential backoff
- StepProcessorRegistry: Step-number-keyed processor lookup

Example Usage:
    >>> from research_workflow.processors import (
    ...     BaseStepProcessor,
    ...     handle_step_errors,
    ...     log_step_execution,
    ...     require_valid_inputs,
    ...     StepProcessorRegistry,
    ... )
    >>>
    >>> class MyStep(BaseStepProcessor):
    ...     step_number = 2
    ...     name = "My Step"
    ...
    ...     def check_inputs(self, inputs):
    ...         return ValidationResult()
    ...
    ...     @handle_step_errors
    ...     @log_step_execution
    ...     @require_valid_inputs
    ...     async def execute(self, inputs, context):
    ...         return StepOutcome.ok({"answer": 42})
    >>>
    >>> registry = StepProcessorRegistry()
    >>> registry.register(MyStep())
"""

import asyncio
import functools
import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, TypeVar

from research_workflow.utils.config import get_settings
from research_workflow.validation import normalize_inputs
from research_workflow.workflow.error_handling import ExternalDependencyError, collect_degraded_data
from research_workflow.workflow.state import (
    InputField,
    StepDefinition,
    StepOutcome,
    ValidationResult,
    WorkflowContext,
)

if TYPE_CHECKING:
    from research_workflow.integrations.market_data import MarketDataProvider

logger = logging.getLogger(__name__)

# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., Any])


class BaseStepProcessor(ABC):
    """Abstract base class for step processors.

    A processor owns the business logic of exactly one step number and knows
    nothing about sessions or ordering. All processors must:
    1. Declare ``step_number`` and ``name`` (and ``is_optional`` if the step
       may be skipped)
    2. Validate a loosely-typed input mapping without raising
    3. Return a ``StepOutcome`` from ``execute`` (use @handle_step_errors)
    4. Read earlier outputs only through the ``WorkflowContext`` they are given
    """

    step_number: int
    name: str
    is_optional: bool = False

    def validate_inputs(self, inputs: Any) -> ValidationResult:
        """Validate caller inputs.

        Args:
            inputs: Anything; non-mappings are treated as an empty mapping and
                camelCase keys are normalized to snake_case

        Returns:
            ValidationResult; never raises for malformed input
        """
        return self.check_inputs(normalize_inputs(inputs))

    @abstractmethod
    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        """Step-specific checks over normalized inputs."""

    @abstractmethod
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        """Run the step.

        Args:
            inputs: Caller inputs (already validated by the orchestrator)
            context: Prior step results and the user's profile

        Returns:
            StepOutcome. External data failures are reported as
            ``success=False`` rather than raised.
        """

    def required_inputs(self) -> list[InputField]:
        """Describe the inputs this step accepts."""
        return []

    def definition(self) -> StepDefinition:
        return StepDefinition(
            step_number=self.step_number, name=self.name, is_optional=self.is_optional
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(step_number={self.step_number}, name={self.name!r})>"


class MarketDataStepProcessor(BaseStepProcessor):
    """Base for steps that fetch data through a ``MarketDataProvider``."""

    def __init__(self, market_data: "MarketDataProvider"):
        self.market_data = market_data

    def resolve_ticker(self, inputs: dict[str, Any], context: WorkflowContext) -> Optional[str]:
        """Ticker from the inputs, else the one chosen in an earlier step."""
        ticker = inputs.get("ticker")
        if isinstance(ticker, str) and ticker.strip():
            return ticker.strip()
        return context.selected_ticker()


def no_ticker_outcome(step_name: str) -> StepOutcome:
    return StepOutcome.failed(
        [f"No ticker selected for {step_name}. Provide a ticker or complete fundamental analysis first."]
    )


def require_valid_inputs(func: F) -> F:
    """Decorator that normalizes and re-validates inputs before ``execute``.

    Invalid inputs short-circuit into a failed outcome carrying the
    validation errors, so step bodies can assume well-formed values.
    """

    @functools.wraps(func)
    async def wrapper(self: BaseStepProcessor, inputs: Any, context: WorkflowContext) -> StepOutcome:
        normalized = normalize_inputs(inputs)
        validation = self.check_inputs(normalized)
        if not validation.is_valid:
            return StepOutcome.failed(validation.errors)
        return await func(self, normalized, context)

    return wrapper  # type: ignore


def handle_step_errors(func: F) -> F:
    """Decorator to handle step execution errors gracefully.

    Converts exceptions raised inside ``execute`` into a failed
    ``StepOutcome`` instead of letting them reach the orchestrator.
    ``ExternalDependencyError`` becomes a data-source error message; anything
    else is logged with its traceback. Cached or fallback data served to the
    step is appended to the outcome's warnings.

    Args:
        func: Async ``execute`` method to wrap

    Returns:
        Wrapped method that always returns a StepOutcome
    """

    @functools.wraps(func)
    async def wrapper(self: BaseStepProcessor, inputs: Any, context: WorkflowContext) -> StepOutcome:
        with collect_degraded_data() as notices:
            try:
                outcome = await func(self, inputs, context)
            except ExternalDependencyError as e:
                logger.warning(
                    f"[{context.session_id}] Step {self.step_number} data source "
                    f"'{e.provider}' failed: {e}"
                )
                outcome = StepOutcome.failed([f"{self.name} data unavailable: {e}"])
            except Exception as e:
                error_msg = f"Step '{self.name}' failed: {type(e).__name__}: {str(e)}"
                logger.error(f"[{context.session_id}] {error_msg}", exc_info=True)
                outcome = StepOutcome.failed([error_msg])

        extra = [notice for notice in notices if notice not in outcome.warnings]
        if extra:
            outcome = outcome.model_copy(update={"warnings": [*outcome.warnings, *extra]})
        return outcome

    return wrapper  # type: ignore


def log_step_execution(func: F) -> F:
    """Decorator to log step execution start, end, and duration.

    Example:
        >>> # Logs:
        >>> # INFO: [3f2a...] Starting step 5: Fundamental Analysis
        >>> # INFO: [3f2a...] Completed step 5: Fundamental Analysis (0.42s, success=True)
    """

    @functools.wraps(func)
    async def wrapper(self: BaseStepProcessor, inputs: Any, context: WorkflowContext) -> StepOutcome:
        session_id = context.session_id
        extra = {"session_id": session_id}
        logger.info(f"[{session_id}] Starting step {self.step_number}: {self.name}", extra=extra)
        start_time = time.time()

        try:
            outcome = await func(self, inputs, context)
        except Exception:
            duration = time.time() - start_time
            logger.error(
                f"[{session_id}] Failed step {self.step_number}: {self.name} ({duration:.2f}s)",
                extra=extra,
            )
            raise

        duration = time.time() - start_time
        logger.info(
            f"[{session_id}] Completed step {self.step_number}: {self.name} "
            f"({duration:.2f}s, success={outcome.success})",
            extra=extra,
        )
        return outcome

    return wrapper  # type: ignore


def retry_on_error(
    max_retries: Optional[int] = None,
    backoff_factor: float = 2.0,
    base_delay: float = 0.5,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    retry_if: Optional[Callable[[Exception], bool]] = None,
) -> Callable[[F], F]:
    """Decorator to retry an async call on failure with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (MARKET_DATA_MAX_RETRIES
            from settings if None)
        backoff_factor: Multiplier for exponential backoff
            Wait time = base_delay * backoff_factor ^ attempt
        base_delay: Delay before the first retry in seconds
        exceptions: Tuple of exception types to catch and retry (default: all)
        retry_if: Optional predicate; exceptions for which it returns False
            are re-raised immediately

    Returns:
        Decorator function

    Note:
        After max_retries exhausted, the original exception is re-raised.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            call_name = getattr(func, "__name__", "unknown_call")
            retries = max_retries if max_retries is not None else get_settings().MARKET_DATA_MAX_RETRIES

            for attempt in range(retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if retry_if is not None and not retry_if(e):
                        raise

                    if attempt >= retries:
                        logger.error(
                            f"'{call_name}' failed after {retries + 1} attempts. "
                            f"Final error: {type(e).__name__}: {str(e)}"
                        )
                        raise

                    wait_time = base_delay * backoff_factor**attempt
                    logger.warning(
                        f"'{call_name}' failed "
                        f"(attempt {attempt + 1}/{retries + 1}). "
                        f"Retrying in {wait_time:.1f}s... "
                        f"Error: {type(e).__name__}: {str(e)}"
                    )
                    await asyncio.sleep(wait_time)

        return wrapper  # type: ignore

    return decorator


class StepProcessorRegistry:
    """Registry of processor instances keyed by step number.

    Example:
        >>> registry = StepProcessorRegistry()
        >>> registry.register(ProfileDefinitionProcessor())
        >>> registry.get(1).name
        'Profile Definition'
        >>> registry.missing_steps(12)
        [2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12]
    """

    def __init__(self, processors: Iterable[BaseStepProcessor] = ()):
        self._processors: dict[int, BaseStepProcessor] = {}
        for processor in processors:
            self.register(processor)

    def register(self, processor: BaseStepProcessor) -> BaseStepProcessor:
        """Register a processor under its step number.

        Raises:
            ValueError: If the step already has a processor
        """
        step = processor.step_number
        if step in self._processors:
            raise ValueError(
                f"Step {step} is already registered to {type(self._processors[step]).__name__}"
            )
        self._processors[step] = processor
        logger.debug(f"Registered step {step} -> {type(processor).__name__}")
        return processor

    def get(self, step_number: int) -> BaseStepProcessor:
        """Get the processor for a step.

        Raises:
            KeyError: If no processor is registered for the step
        """
        if step_number not in self._processors:
            available = ", ".join(str(step) for step in self.list_steps()) or "none"
            raise KeyError(f"Step {step_number} not registered. Available steps: {available}")
        return self._processors[step_number]

    def find(self, step_number: int) -> Optional[BaseStepProcessor]:
        return self._processors.get(step_number)

    def list_steps(self) -> list[int]:
        return sorted(self._processors)

    def missing_steps(self, total_steps: int) -> list[int]:
        """Step numbers in 1..total_steps that have no processor."""
        return [step for step in range(1, total_steps + 1) if step not in self._processors]

    def clear(self) -> None:
        """Clear all registered processors."""
        self._processors.clear()

    def __contains__(self, step_number: object) -> bool:
        return step_number in self._processors

    def __len__(self) -> int:
        return len(self._processors)


__all__ = [
    "BaseStepProcessor",
    "MarketDataStepProcessor",
    "StepProcessorRegistry",
    "handle_step_errors",
    "log_step_execution",
    "require_valid_inputs",
    "retry_on_error",
    "no_ticker_outcome",
]
