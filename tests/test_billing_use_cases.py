from concurrent.futures import ThreadPoolExecutor

import pytest

from core.entities.errors import HardCapExceeded, InsufficientCredits, PlanLimitExceeded, UnknownPack
from core.services import entitlement_clock as clock
from core.services.plan_policy import GenerationParams
from core.use_cases.billing_use_cases import buy_credit_pack, debit_for_generation, get_wallet
from core.use_cases.purchase_use_cases import buy_discrete_addon
from tests.conftest import NOW

DAY = clock.DAY_MS
BASIC_CLIP = GenerationParams(duration=5, frame_rate=30, resolution="720p", model="kling")


def test_new_user_gets_trial_and_pays_in_one_step(store, policy):
    receipt = debit_for_generation(store, policy, "new-user", BASIC_CLIP, now=NOW)

    assert receipt.cost == 1
    assert receipt.new_balance == 4
    assert receipt.trial_granted is True
    assert receipt.plan == "free"
    assert receipt.watermark_required is True
    doc = store.get("new-user")
    assert doc["credits"] == 4
    assert doc["trialCreditsGranted"] is True
    assert doc["plan"] == "free"


def test_trial_is_not_granted_twice(store, policy):
    debit_for_generation(store, policy, "u", BASIC_CLIP, now=NOW)
    second = debit_for_generation(store, policy, "u", BASIC_CLIP, now=NOW)
    assert second.trial_granted is False
    assert second.new_balance == 3


def test_legacy_record_gets_trial_backfilled(store, policy, seed):
    seed("legacy", credits=2, plan="free")
    receipt = debit_for_generation(store, policy, "legacy", BASIC_CLIP, now=NOW)
    assert receipt.trial_granted is True
    assert receipt.new_balance == 2 + 5 - 1
    assert store.get("legacy")["trialCreditsGranted"] is True


def test_insufficient_credits_leaves_record_untouched(store, policy, seed):
    before = seed("poor", credits=3, trialCreditsGranted=True, plan="pro", planUntil=NOW + 10 * DAY)
    params = GenerationParams(duration=10, frame_rate=60, resolution="1080p", model="kling")

    with pytest.raises(InsufficientCredits) as info:
        debit_for_generation(store, policy, "poor", params, now=NOW)

    assert (info.value.balance, info.value.cost) == (3, 5)
    assert store.get("poor") == before


def test_plan_limit_blocks_before_any_spend(store, policy, seed):
    before = seed("rich", credits=500, trialCreditsGranted=True, plan="free")
    with pytest.raises(PlanLimitExceeded) as info:
        debit_for_generation(store, policy, "rich", GenerationParams(duration=5, resolution="4k"), now=NOW)
    assert info.value.dimension == "resolution"
    assert store.get("rich") == before


def test_rejected_request_does_not_provision_or_grant_trial(store, policy):
    with pytest.raises(HardCapExceeded):
        debit_for_generation(store, policy, "ghost", GenerationParams(duration=30), now=NOW)
    assert store.get("ghost") is None


def test_expired_plan_limits_apply_even_before_sweep(store, policy, seed):
    seed("lapsed", credits=50, trialCreditsGranted=True, plan="pro", planUntil=NOW - DAY)
    with pytest.raises(PlanLimitExceeded) as info:
        debit_for_generation(store, policy, "lapsed", GenerationParams(duration=10), now=NOW)
    assert info.value.plan == "free"


def test_watermark_is_derived_from_current_state(store, policy, seed):
    seed("nw", credits=10, trialCreditsGranted=True, noWatermarkUntil=NOW + DAY)
    assert debit_for_generation(store, policy, "nw", BASIC_CLIP, now=NOW).watermark_required is False
    # same stored field, one day later
    assert debit_for_generation(store, policy, "nw", BASIC_CLIP, now=NOW + 2 * DAY).watermark_required is True

    seed("pro", credits=10, trialCreditsGranted=True, plan="pro", planUntil=NOW + DAY)
    assert debit_for_generation(store, policy, "pro", BASIC_CLIP, now=NOW).watermark_required is False


def test_concurrent_debits_grant_trial_once(store, policy):
    def attempt(_):
        try:
            return debit_for_generation(store, policy, "racer", BASIC_CLIP, now=NOW)
        except InsufficientCredits:
            return None

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(8)))

    paid = [r for r in results if r is not None]
    assert len(paid) == 5
    assert sum(r.trial_granted for r in paid) == 1
    doc = store.get("racer")
    assert doc["credits"] == 0
    assert doc["trialCreditsGranted"] is True


def test_concurrent_spending_never_goes_negative(store, catalog, policy, seed):
    seed("shared", credits=10, trialCreditsGranted=True)

    def spend(i):
        try:
            if i % 2:
                buy_discrete_addon(store, catalog, "shared", "no_watermark_7d", now=NOW)
                return 3
            debit_for_generation(store, policy, "shared", BASIC_CLIP, now=NOW)
            return 1
        except InsufficientCredits:
            return 0

    with ThreadPoolExecutor(max_workers=6) as pool:
        spent = sum(pool.map(spend, range(12)))

    credits = store.get("shared")["credits"]
    assert credits >= 0
    assert credits == 10 - spent


def test_credit_pack_tops_up_without_trial(store, catalog, policy):
    assert buy_credit_pack(store, catalog, "buyer", "credits_10") == 10
    doc = store.get("buyer")
    assert doc["credits"] == 10
    assert doc["trialCreditsGranted"] is False

    # the trial still arrives on first real use
    receipt = debit_for_generation(store, policy, "buyer", BASIC_CLIP, now=NOW)
    assert receipt.trial_granted is True
    assert receipt.new_balance == 14


def test_unknown_credit_pack(store, catalog):
    with pytest.raises(UnknownPack):
        buy_credit_pack(store, catalog, "buyer", "credits_9999")
    assert store.get("buyer") is None


def test_wallet_hides_expired_grants(store, seed):
    seed(
        "w", credits=7, trialCreditsGranted=True, plan="pro", planUntil=NOW - 1,
        noWatermarkUntil=NOW - 1, adFreeUntil=NOW + DAY, promptBuilderUntil=NOW + DAY,
    )
    view = get_wallet(store, "w", now=NOW)
    assert view.plan == "free"
    assert view.plan_until is None
    assert view.watermark_required is True
    # prompt builder needs an active studio plan
    assert view.entitlements == {"adFreeUntil": NOW + DAY}
    # nothing was written by the read
    assert store.get("w")["plan"] == "pro"


def test_wallet_for_unknown_user(store):
    view = get_wallet(store, "nobody", now=NOW)
    assert view.credits == 0
    assert view.plan == "free"
    assert view.trial_credits_granted is False


def test_pre_2001_expiry_stays_expired(store, seed):
    seed("old", credits=5, trialCreditsGranted=True, noWatermarkUntil="2001-01-01T00:00:00Z")
    view = get_wallet(store, "old", now=NOW)
    assert view.entitlements == {}
    assert view.watermark_required is True


def test_debit_writes_untouched_instants_back_as_stored(store, policy, seed):
    seed("old", credits=5, trialCreditsGranted=True, adFreeUntil="2001-01-01T00:00:00Z")
    receipt = debit_for_generation(store, policy, "old", BASIC_CLIP, now=NOW)

    assert receipt.watermark_required is True
    assert store.get("old")["adFreeUntil"] == "2001-01-01T00:00:00Z"
    assert get_wallet(store, "old", now=NOW).entitlements == {}
