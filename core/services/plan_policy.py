import math
from dataclasses import dataclass
from typing import Any, Dict

from core.entities.catalog import Catalog, PLAN_FREE, PlanLimits, resolution_rank
from core.entities.errors import HardCapExceeded, InvalidGenerationParams, PlanLimitExceeded


@dataclass(frozen=True)
class GenerationParams:
    duration: float
    frame_rate: int = 30
    resolution: str = "720p"
    model: str = "kling"


@dataclass(frozen=True)
class CostQuote:
    cost: int
    breakdown: Dict[str, Any]


class PlanPolicy:
    """Plan ceilings and generation pricing over an immutable catalog."""

    def __init__(self, catalog: Catalog):
        self.catalog = catalog

    def limits_for(self, plan: str) -> PlanLimits:
        limits = self.catalog.plan_limits
        return limits.get(plan) or limits[PLAN_FREE]

    def enforce(self, plan: str, params: GenerationParams) -> PlanLimits:
        """Hard caps first, then the plan's own ceilings. Returns the limits applied."""
        duration, fps = params.duration, params.frame_rate
        if not _positive_number(duration):
            raise InvalidGenerationParams("duration must be a positive number", dimension="duration")
        if not _positive_number(fps):
            raise InvalidGenerationParams("frameRate must be a positive number", dimension="frameRate")
        requested_rank = resolution_rank(params.resolution)
        if requested_rank is None:
            raise InvalidGenerationParams(f"unsupported resolution {params.resolution!r}", dimension="resolution")

        caps = self.catalog.hard_caps
        if duration > caps.max_duration_seconds:
            raise HardCapExceeded("duration", duration, caps.max_duration_seconds)
        if fps > caps.max_frame_rate:
            raise HardCapExceeded("frameRate", fps, caps.max_frame_rate)

        resolved = plan if plan in self.catalog.plan_limits else PLAN_FREE
        limits = self.limits_for(resolved)
        if duration > limits.max_duration_seconds:
            raise PlanLimitExceeded("duration", duration, limits.max_duration_seconds, resolved)
        if fps > limits.max_frame_rate:
            raise PlanLimitExceeded("frameRate", fps, limits.max_frame_rate, resolved)
        if requested_rank > resolution_rank(limits.max_resolution):
            raise PlanLimitExceeded("resolution", params.resolution, limits.max_resolution, resolved)
        return limits

    def cost_of(self, params: GenerationParams) -> CostQuote:
        factors = self.catalog.cost_factors
        base_units = math.ceil(params.duration / factors.seconds_per_unit)
        fps_factor = factors.frame_rate.get(int(params.frame_rate), 1.0)
        res_factor = factors.resolution.get((params.resolution or "").strip().lower(), 1.0)
        model_factor = factors.model.get((params.model or "").strip().lower(), 1.0)
        # rounding first keeps float noise (3 * 1.1 == 3.3000000000000003) from bumping the ceil
        raw = round(base_units * fps_factor * res_factor * model_factor, 6)
        cost = max(1, math.ceil(raw))
        return CostQuote(
            cost=cost,
            breakdown={
                "baseUnits": base_units,
                "frameRateFactor": fps_factor,
                "resolutionFactor": res_factor,
                "modelFactor": model_factor,
            },
        )


def _positive_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0
