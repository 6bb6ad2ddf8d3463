import pytest

from core.entities.errors import HardCapExceeded, InvalidGenerationParams, PlanLimitExceeded
from core.services.plan_policy import GenerationParams


def test_limits_fall_back_to_free(policy):
    assert policy.limits_for("enterprise") == policy.limits_for("free")
    assert policy.limits_for("studio").max_resolution == "4k"


def test_free_plan_rejects_4k(policy):
    with pytest.raises(PlanLimitExceeded) as info:
        policy.enforce("free", GenerationParams(duration=5, resolution="4k"))
    err = info.value
    assert (err.dimension, err.requested, err.allowed, err.plan) == ("resolution", "4k", "720p", "free")


def test_unknown_plan_is_checked_as_free(policy):
    with pytest.raises(PlanLimitExceeded) as info:
        policy.enforce("platinum", GenerationParams(duration=8))
    assert info.value.plan == "free"
    assert info.value.dimension == "duration"


def test_hard_cap_checked_before_plan(policy):
    with pytest.raises(HardCapExceeded) as info:
        policy.enforce("free", GenerationParams(duration=25))
    assert info.value.dimension == "duration"
    assert info.value.allowed == 20

    with pytest.raises(HardCapExceeded):
        policy.enforce("studio", GenerationParams(duration=10, frame_rate=120))


def test_plan_frame_rate_limit(policy):
    with pytest.raises(PlanLimitExceeded) as info:
        policy.enforce("basic", GenerationParams(duration=5, frame_rate=60))
    assert info.value.dimension == "frameRate"
    policy.enforce("pro", GenerationParams(duration=15, frame_rate=60, resolution="1080p"))


@pytest.mark.parametrize("params", [
    GenerationParams(duration=0),
    GenerationParams(duration=-3),
    GenerationParams(duration=5, frame_rate=0),
    GenerationParams(duration=5, resolution="8k"),
])
def test_malformed_params(policy, params):
    with pytest.raises(InvalidGenerationParams):
        policy.enforce("studio", params)


def test_cost_of_basic_clip_is_one(policy):
    quote = policy.cost_of(GenerationParams(duration=5, frame_rate=30, resolution="720p", model="kling"))
    assert quote.cost == 1
    assert quote.breakdown == {
        "baseUnits": 1, "frameRateFactor": 1.0, "resolutionFactor": 1.0, "modelFactor": 1.0,
    }


def test_cost_rounds_up_each_stage(policy):
    # ceil(6/5) = 2 units, 2 * 1.5 * 1.5 = 4.5 -> 5
    assert policy.cost_of(GenerationParams(duration=6, frame_rate=60, resolution="1080p")).cost == 5
    # 4 units * 2.5 * 2.0 = 20
    assert policy.cost_of(GenerationParams(duration=20, frame_rate=30, resolution="4k", model="veo")).cost == 20


def test_unknown_factors_default_to_one(policy):
    quote = policy.cost_of(GenerationParams(duration=5, frame_rate=25, model="mystery"))
    assert quote.cost == 1
    assert quote.breakdown["frameRateFactor"] == 1.0
    assert quote.breakdown["modelFactor"] == 1.0


def test_cost_is_deterministic(policy):
    params = GenerationParams(duration=13, frame_rate=60, resolution="1080p", model="runway")
    costs = {policy.cost_of(params).cost for _ in range(50)}
    assert costs == {policy.cost_of(GenerationParams(13, 60, "1080p", "runway")).cost}
    # 3 units * 1.5 * 1.5 * 1.5 = 10.125 -> 11
    assert costs == {11}
