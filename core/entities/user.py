import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.entities.catalog import (
    ALL_ENTITLEMENTS,
    PLAN_FREE,
    PLAN_ORDER,
    PLAN_STUDIO,
    PROMPT_BUILDER_UNTIL,
    NO_WATERMARK_UNTIL,
    WATERMARK_FREE_PLANS,
)
from core.services import entitlement_clock as clock

logger = logging.getLogger(__name__)

INSTANT_FIELDS = ("planUntil",) + tuple(ALL_ENTITLEMENTS)


@dataclass
class UserRecord:
    """One ledger document per identity.

    Instants are epoch millis once written by this service; on read they go
    through ``entitlement_clock.to_millis`` so older shapes still load.
    """
    user_id: str
    credits: int = 0
    plan: str = PLAN_FREE  # free | basic | pro | studio
    plan_until: Optional[int] = None
    plan_period: Optional[str] = None
    trial_credits_granted: bool = False
    entitlements: Dict[str, Optional[int]] = field(default_factory=lambda: {k: None for k in ALL_ENTITLEMENTS})
    packs_owned: List[str] = field(default_factory=list)
    # fields outside the billing invariants, carried through untouched
    extra: Dict[str, Any] = field(default_factory=dict)
    # instants as they were stored, written back unchanged unless the value moved
    stored_instants: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_doc(cls, user_id: str, doc: Dict[str, Any]) -> "UserRecord":
        known = {"credits", "plan", "planUntil", "planPeriod", "trialCreditsGranted", "packsOwned"}
        known.update(ALL_ENTITLEMENTS)
        plan = doc.get("plan") or PLAN_FREE
        packs = doc.get("packsOwned")
        if not isinstance(packs, (list, tuple)):
            if packs:
                logger.warning("Ignoring malformed packsOwned for %s: %r", user_id, packs)
            packs = []
        return cls(
            user_id=user_id,
            credits=_as_credits(user_id, doc.get("credits")),
            plan=plan if plan in PLAN_ORDER else PLAN_FREE,
            plan_until=clock.to_millis(doc.get("planUntil")),
            plan_period=doc.get("planPeriod"),
            trial_credits_granted=bool(doc.get("trialCreditsGranted", False)),
            entitlements={k: clock.to_millis(doc.get(k)) for k in ALL_ENTITLEMENTS},
            packs_owned=[str(p) for p in packs if p],
            extra={k: v for k, v in doc.items() if k not in known},
            stored_instants={k: doc[k] for k in INSTANT_FIELDS if doc.get(k) is not None},
        )

    def _instant_out(self, name: str, value: Optional[int]) -> Any:
        # a normalized pre-2001 millis value would read back as seconds
        if name in self.stored_instants and clock.to_millis(self.stored_instants[name]) == value:
            return self.stored_instants[name]
        return value

    def to_doc(self) -> Dict[str, Any]:
        doc = dict(self.extra)
        doc.update({
            "credits": int(self.credits),
            "plan": self.plan,
            "planUntil": self._instant_out("planUntil", self.plan_until),
            "planPeriod": self.plan_period,
            "trialCreditsGranted": self.trial_credits_granted,
            "packsOwned": list(self.packs_owned),
        })
        doc.update({k: self._instant_out(k, v) for k, v in self.entitlements.items()})
        return doc

    # derived views, recomputed from the stored instants on every read

    def effective_plan(self, now: Optional[int] = None) -> str:
        if self.plan == PLAN_FREE:
            return PLAN_FREE
        if not clock.is_active(self.plan_until, now):
            return PLAN_FREE
        return self.plan

    def is_entitled(self, name: str, now: Optional[int] = None) -> bool:
        if name == PROMPT_BUILDER_UNTIL and self.effective_plan(now) != PLAN_STUDIO:
            return False
        return clock.is_active(self.entitlements.get(name), now)

    def active_entitlements(self, now: Optional[int] = None) -> Dict[str, int]:
        return {
            name: until
            for name, until in self.entitlements.items()
            if until is not None and self.is_entitled(name, now)
        }

    def watermark_required(self, now: Optional[int] = None) -> bool:
        if self.effective_plan(now) in WATERMARK_FREE_PLANS:
            return False
        return not self.is_entitled(NO_WATERMARK_UNTIL, now)


def _as_credits(user_id: str, value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        logger.warning("Non-numeric credits for %s: %r, treating as 0", user_id, value)
        return 0
    credits = max(0, int(value))
    if credits != value:
        logger.warning("Credits for %s coerced from %r to %s", user_id, value, credits)
    return credits
