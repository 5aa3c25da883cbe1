"""
Custom exception types for Budget-Genie.

Every exception carries a machine-readable code so callers can
handle specific failure modes programmatically.

The engine itself never raises for business input (zero budgets,
zero conversions, over-budget plans).  These exceptions cover caller
mistakes: unknown ids, unknown strategies, unreadable plan files.
"""


class BudgetGenieError(Exception):
    """Base exception for all Budget-Genie errors."""

    def __init__(self, message: str, code: str = "BUDGET_GENIE_ERROR"):
        self.code = code
        super().__init__(message)


class ChannelNotFoundError(BudgetGenieError):
    """Raised when a plan operation references a channel id that does not exist."""

    def __init__(self, channel_id: str):
        self.channel_id = channel_id
        super().__init__(f"Channel '{channel_id}' not found in plan", code="CHANNEL_NOT_FOUND")


class UnknownStrategyError(BudgetGenieError):
    """Raised when a strategy or preset identifier is not registered."""

    def __init__(self, strategy_id: str, available: list[str] | None = None):
        self.strategy_id = strategy_id
        self.available = available or []
        msg = f"Unknown strategy '{strategy_id}'"
        if self.available:
            msg += f". Available: {', '.join(self.available)}"
        super().__init__(msg, code="UNKNOWN_STRATEGY")


class PlanValidationError(BudgetGenieError):
    """Raised when a plan file cannot be parsed into a valid MediaPlan."""

    def __init__(self, message: str, source: str = ""):
        self.source = source
        super().__init__(message, code="PLAN_VALIDATION_ERROR")
