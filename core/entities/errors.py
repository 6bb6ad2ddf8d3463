from typing import Any, Dict, Optional


class BillingError(ValueError):
    """Base for every billing-affecting failure. Raised before or inside a
    ledger transaction; the transaction is aborted with no effect."""

    code = "billing_error"

    def __init__(self, message: str, **fields: Any):
        super().__init__(message)
        self.message = message
        self.fields = fields

    def to_detail(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {"code": self.code, "message": self.message}
        detail.update({k: v for k, v in self.fields.items() if v is not None})
        return detail


class InsufficientCredits(BillingError):
    code = "insufficient_credits"

    def __init__(self, balance: int, cost: int):
        super().__init__(f"Insufficient credits: balance {balance}, cost {cost}", balance=balance, cost=cost)
        self.balance = balance
        self.cost = cost


class HardCapExceeded(BillingError):
    code = "hard_cap_exceeded"

    def __init__(self, dimension: str, requested: Any, allowed: Any):
        super().__init__(
            f"{dimension} {requested} exceeds the hard cap {allowed}",
            dimension=dimension, requested=requested, allowed=allowed,
        )
        self.dimension = dimension
        self.requested = requested
        self.allowed = allowed


class PlanLimitExceeded(BillingError):
    code = "plan_limit_exceeded"

    def __init__(self, dimension: str, requested: Any, allowed: Any, plan: str):
        super().__init__(
            f"{dimension} {requested} is above the {plan} plan limit {allowed}",
            dimension=dimension, requested=requested, allowed=allowed, plan=plan,
        )
        self.dimension = dimension
        self.requested = requested
        self.allowed = allowed
        self.plan = plan


class InvalidGenerationParams(BillingError):
    code = "invalid_params"

    def __init__(self, message: str, dimension: Optional[str] = None):
        super().__init__(message, dimension=dimension)


class UnknownAddon(BillingError):
    code = "unknown_addon"

    def __init__(self, addon_key: str):
        super().__init__(f"Unknown add-on: {addon_key}", addon=addon_key)


class UnknownPack(BillingError):
    code = "unknown_pack"

    def __init__(self, pack_id: str):
        super().__init__(f"Unknown pack: {pack_id}", pack=pack_id)


class UnknownPlan(BillingError):
    code = "unknown_plan"

    def __init__(self, plan_id: str):
        super().__init__(f"Unknown plan: {plan_id}", plan=plan_id)


class BadPeriod(BillingError):
    code = "bad_period"

    def __init__(self, plan_id: str, period_days: Any):
        super().__init__(
            f"No {plan_id} price for a {period_days} day period", plan=plan_id, periodDays=period_days
        )


class UserNotFound(BillingError):
    code = "user_not_found"

    def __init__(self, user_id: str):
        super().__init__("User not found", userId=user_id)


class TransientStoreError(RuntimeError):
    """The ledger store gave up after exhausting its conflict retries. Safe to retry."""

    code = "store_unavailable"
