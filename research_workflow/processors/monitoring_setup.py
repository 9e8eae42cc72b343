"""Step 12 - Monitoring Setup."""

import calendar
from datetime import datetime
from typing import Any

from research_workflow.analysis.models import AlertThresholds, MonitoringPlan
from research_workflow.processors import (
    BaseStepProcessor,
    handle_step_errors,
    log_step_execution,
    no_ticker_outcome,
    require_valid_inputs,
)
from research_workflow.validation import (
    REVIEW_FREQUENCIES,
    clean_ticker,
    combine,
    validate_alert_app,
    validate_percentage,
    validate_review_frequency,
    validate_ticker,
)
from research_workflow.workflow.state import (
    InputField,
    StepOutcome,
    ValidationResult,
    WorkflowContext,
    utc_now,
)

REVIEW_INTERVAL_MONTHS = {"quarterly": 3, "yearly": 12}


def add_months(moment: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_review_date(review_frequency: str, now: datetime | None = None) -> datetime:
    return add_months(now or utc_now(), REVIEW_INTERVAL_MONTHS[review_frequency])


class MonitoringSetupProcessor(BaseStepProcessor):
    step_number = 12
    name = "Monitoring Setup"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return combine(
            validate_alert_app(inputs.get("alert_app")),
            validate_review_frequency(inputs.get("review_frequency")),
            validate_ticker(inputs.get("ticker"), required=False),
            validate_percentage(inputs.get("price_drop_percent"), "Price drop percent", 100),
            validate_percentage(inputs.get("price_gain_percent"), "Price gain percent", 1000),
        )

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        ticker = clean_ticker(inputs.get("ticker")) or context.selected_ticker()
        if ticker is None:
            return no_ticker_outcome(self.name)

        alert_app = inputs["alert_app"].strip()
        drop = inputs.get("price_drop_percent")
        gain = inputs.get("price_gain_percent")
        thresholds = None
        if drop is not None or gain is not None:
            thresholds = AlertThresholds(price_drop_percent=drop, price_gain_percent=gain)

        plan = MonitoringPlan(
            ticker=ticker,
            alert_app=alert_app,
            review_frequency=inputs["review_frequency"],
            next_review_date=next_review_date(inputs["review_frequency"]),
            alert_thresholds=thresholds,
        )
        return StepOutcome.ok(
            {"ticker": ticker, "monitoring_plan": plan.model_dump(mode="json")},
            [
                f"Monitoring configured for {ticker} using {alert_app}. "
                f"Next review scheduled for {plan.next_review_date.date().isoformat()}."
            ],
        )

    def required_inputs(self) -> list[InputField]:
        return [
            InputField(name="alert_app", type="string", description="App that will send price alerts"),
            InputField(
                name="review_frequency",
                type="string",
                description=f"One of: {', '.join(REVIEW_FREQUENCIES)}",
            ),
            InputField(name="ticker", type="string", required=False),
            InputField(name="price_drop_percent", type="number", required=False),
            InputField(name="price_gain_percent", type="number", required=False),
        ]
