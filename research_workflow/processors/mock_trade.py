"""Step 11 - Mock Trade Execution.

Simulates placing the order sized in step 10. No order is ever sent to a
broker; every confirmation is flagged ``is_mock``.
"""

import re
import secrets
import time
from typing import Any, Optional

from research_workflow.analysis.models import TradeConfirmation
from research_workflow.processors import (
    BaseStepProcessor,
    handle_step_errors,
    log_step_execution,
    no_ticker_outcome,
    require_valid_inputs,
)
from research_workflow.validation import (
    clean_ticker,
    combine,
    validate_broker_platform,
    validate_positive_number,
    validate_ticker,
)
from research_workflow.workflow.state import (
    InputField,
    StepOutcome,
    ValidationResult,
    WorkflowContext,
)

MOCK_TRADE_WARNING = (
    "This is a MOCK trade for educational purposes only. No actual trade has been executed."
)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(number: int) -> str:
    digits = ""
    while True:
        number, remainder = divmod(number, 36)
        digits = _BASE36[remainder] + digits
        if number == 0:
            return digits


def generate_confirmation_id(broker_platform: str) -> str:
    """
    Build a unique mock confirmation id.

    Format: ``MOCK-{BROKER}-{TIMESTAMP}-{RANDOM}`` where BROKER is the first
    three characters of the platform name (non-letters replaced by X),
    TIMESTAMP is epoch milliseconds in base 36 and RANDOM is 8 hex digits.
    """
    prefix = re.sub(r"[^A-Z]", "X", broker_platform.strip()[:3].upper())
    timestamp = _base36(int(time.time() * 1000))
    return f"MOCK-{prefix}-{timestamp}-{secrets.token_hex(4).upper()}"


def _validate_quantity(value: Any) -> ValidationResult:
    result = validate_positive_number(value, "Quantity", required=False)
    if result.is_valid and value is not None and not float(value).is_integer():
        return ValidationResult.from_errors(["Quantity must be a whole number"])
    return result


class MockTradeProcessor(BaseStepProcessor):
    step_number = 11
    name = "Mock Trade Execution"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return combine(
            validate_broker_platform(inputs.get("broker_platform")),
            validate_ticker(inputs.get("ticker"), required=False),
            _validate_quantity(inputs.get("quantity")),
            validate_positive_number(inputs.get("price"), "Price", required=False),
        )

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        recommendation = context.output(10, "buy_recommendation") or {}

        ticker: Optional[str] = (
            clean_ticker(inputs.get("ticker"))
            or recommendation.get("ticker")
            or context.selected_ticker()
        )
        if ticker is None:
            return no_ticker_outcome(self.name)

        quantity = inputs.get("quantity") or recommendation.get("shares_to_buy")
        price = inputs.get("price") or recommendation.get("entry_price")

        errors = []
        if not quantity:
            errors.append("Quantity is required: provide one or complete position sizing first")
        if not price:
            errors.append("Price is required: provide one or complete position sizing first")
        if errors:
            return StepOutcome.failed(errors)

        broker = inputs["broker_platform"].strip()
        confirmation = TradeConfirmation(
            ticker=ticker,
            quantity=int(quantity),
            price=float(price),
            broker_platform=broker,
            confirmation_id=generate_confirmation_id(broker),
        )
        return StepOutcome.ok(
            {"ticker": ticker, "trade_confirmation": confirmation.model_dump(mode="json")},
            [MOCK_TRADE_WARNING],
        )

    def required_inputs(self) -> list[InputField]:
        return [
            InputField(
                name="broker_platform",
                type="string",
                description="Name of the broker platform (e.g. 'E*TRADE')",
            ),
            InputField(name="ticker", type="string", required=False),
            InputField(
                name="quantity",
                type="integer",
                required=False,
                description="Defaults to the shares from position sizing",
            ),
            InputField(
                name="price",
                type="number",
                required=False,
                description="Defaults to the entry price from position sizing",
            ),
        ]
