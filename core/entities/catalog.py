from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

PLAN_FREE = "free"
PLAN_BASIC = "basic"
PLAN_PRO = "pro"
PLAN_STUDIO = "studio"

# ascending; index is the rank
PLAN_ORDER: Tuple[str, ...] = (PLAN_FREE, PLAN_BASIC, PLAN_PRO, PLAN_STUDIO)
PURCHASABLE_PLANS = frozenset({PLAN_BASIC, PLAN_PRO, PLAN_STUDIO})
WATERMARK_FREE_PLANS = frozenset({PLAN_PRO, PLAN_STUDIO})
ENTITLEMENT_BUNDLE_PLANS = frozenset({PLAN_PRO, PLAN_STUDIO})

RESOLUTION_ORDER: Tuple[str, ...] = ("720p", "1080p", "4k")

# entitlement fields on the user record
NO_WATERMARK_UNTIL = "noWatermarkUntil"
AD_FREE_UNTIL = "adFreeUntil"
TEMPLATES_UNTIL = "templatesUntil"
PRO_PROMPT_UNTIL = "proPromptUntil"
PROMPT_BUILDER_UNTIL = "promptBuilderUntil"

INDEPENDENT_ENTITLEMENTS: Tuple[str, ...] = (NO_WATERMARK_UNTIL, AD_FREE_UNTIL, TEMPLATES_UNTIL, PRO_PROMPT_UNTIL)
BUNDLED_ENTITLEMENTS = INDEPENDENT_ENTITLEMENTS
ALL_ENTITLEMENTS: Tuple[str, ...] = INDEPENDENT_ENTITLEMENTS + (PROMPT_BUILDER_UNTIL,)


def plan_rank(plan: Optional[str]) -> int:
    try:
        return PLAN_ORDER.index(plan or PLAN_FREE)
    except ValueError:
        return 0


def resolution_rank(resolution: str) -> Optional[int]:
    key = (resolution or "").strip().lower()
    if key not in RESOLUTION_ORDER:
        return None
    return RESOLUTION_ORDER.index(key)


@dataclass(frozen=True)
class PlanLimits:
    max_duration_seconds: int
    max_frame_rate: int
    max_resolution: str


@dataclass(frozen=True)
class HardCaps:
    max_duration_seconds: int = 20
    max_frame_rate: int = 60


@dataclass(frozen=True)
class AddonOffer:
    cost: int
    days: int
    entitlement_field: str


@dataclass(frozen=True)
class PackOffer:
    cost: int
    included_from_plan: str


@dataclass(frozen=True)
class CostFactors:
    frame_rate: Mapping[int, float]
    resolution: Mapping[str, float]
    model: Mapping[str, float]
    seconds_per_unit: int = 5


def _frozen(table):
    return MappingProxyType(dict(table))


@dataclass(frozen=True)
class Catalog:
    """Read-only pricing and limits data. Built once and injected."""

    trial_credits: int
    plan_limits: Mapping[str, PlanLimits]
    hard_caps: HardCaps
    cost_factors: CostFactors
    addons: Mapping[str, AddonOffer]
    packs: Mapping[str, PackOffer]
    # plan -> period days -> price in credits
    plan_prices: Mapping[str, Mapping[int, int]]
    credit_packs: Mapping[str, int]
    bundled_entitlement_days: int = 30


def default_catalog(trial_credits: int = 5) -> Catalog:
    return Catalog(
        trial_credits=trial_credits,
        plan_limits=_frozen({
            PLAN_FREE: PlanLimits(5, 30, "720p"),
            PLAN_BASIC: PlanLimits(10, 30, "1080p"),
            PLAN_PRO: PlanLimits(15, 60, "1080p"),
            PLAN_STUDIO: PlanLimits(20, 60, "4k"),
        }),
        hard_caps=HardCaps(),
        cost_factors=CostFactors(
            frame_rate=_frozen({24: 1.0, 30: 1.0, 60: 1.5}),
            resolution=_frozen({"720p": 1.0, "1080p": 1.5, "4k": 2.5}),
            model=_frozen({"kling": 1.0, "runway": 1.5, "veo": 2.0, "sora": 2.0}),
        ),
        addons=_frozen({
            "no_watermark_7d": AddonOffer(3, 7, NO_WATERMARK_UNTIL),
            "no_watermark_30d": AddonOffer(8, 30, NO_WATERMARK_UNTIL),
            "ad_free_30d": AddonOffer(5, 30, AD_FREE_UNTIL),
            "templates_30d": AddonOffer(5, 30, TEMPLATES_UNTIL),
            "pro_prompt_30d": AddonOffer(5, 30, PRO_PROMPT_UNTIL),
        }),
        packs=_frozen({
            "cinematic_pack": PackOffer(20, PLAN_PRO),
            "anime_pack": PackOffer(15, PLAN_STUDIO),
        }),
        plan_prices=_frozen({
            PLAN_BASIC: _frozen({30: 20, 90: 50}),
            PLAN_PRO: _frozen({30: 50, 90: 135}),
            PLAN_STUDIO: _frozen({30: 100, 90: 270}),
        }),
        credit_packs=_frozen({"credits_10": 10, "credits_50": 50, "credits_120": 120}),
    )
