"""Unit tests for the adaptive TTL policy."""

import random

import pytest

from llmchat.cache import AdaptiveTtlPolicy


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_policy(clock: FakeClock | None = None, **overrides: float) -> AdaptiveTtlPolicy:
    params = {
        "initial_ttl": 300.0,
        "min_ttl": 60.0,
        "max_ttl": 900.0,
        "step": 60.0,
        "sample_size": 20,
        "adjust_interval": 120.0,
    }
    params.update(overrides)
    return AdaptiveTtlPolicy(clock=clock or FakeClock(), **params)  # type: ignore[arg-type]


@pytest.mark.unit
class TestAdaptiveTtlPolicy:
    """Test TTL adjustment rules."""

    def test_initial_ttl_is_clamped(self):
        assert make_policy(initial_ttl=5.0).get_ttl() == 60.0
        assert make_policy(initial_ttl=5000.0).get_ttl() == 900.0

    def test_high_hit_ratio_expands_by_one_step(self):
        policy = make_policy()
        for _ in range(15):
            policy.record_hit()
        for _ in range(5):
            policy.record_miss()

        assert policy.get_ttl() == 360.0
        state = policy.state()
        assert state.hit_count == 0
        assert state.miss_count == 0

    def test_low_hit_ratio_shrinks_by_one_step(self):
        policy = make_policy()
        for _ in range(5):
            policy.record_hit()
        for _ in range(15):
            policy.record_miss()

        assert policy.get_ttl() == 240.0

    def test_middling_ratio_keeps_ttl_but_restarts_window(self):
        policy = make_policy()
        for _ in range(10):
            policy.record_hit()
        for _ in range(10):
            policy.record_miss()

        assert policy.get_ttl() == 300.0
        assert policy.state().hit_count == 0

    def test_no_adjustment_before_sample_or_interval(self):
        clock = FakeClock()
        policy = make_policy(clock)
        for _ in range(19):
            policy.record_hit()

        assert policy.get_ttl() == 300.0
        assert policy.state().hit_count == 19

    def test_interval_elapsed_triggers_adjustment_with_small_sample(self):
        clock = FakeClock()
        policy = make_policy(clock)
        policy.record_hit()
        policy.record_hit()
        clock.advance(121.0)
        policy.record_hit()

        assert policy.get_ttl() == 360.0
        assert policy.state().last_adjusted_at == clock.now

    def test_expansion_clamps_to_max(self):
        policy = make_policy(initial_ttl=880.0)
        for _ in range(20):
            policy.record_hit()

        assert policy.get_ttl() == 900.0

    def test_shrink_clamps_to_min(self):
        policy = make_policy(initial_ttl=90.0)
        for _ in range(20):
            policy.record_miss()

        assert policy.get_ttl() == 60.0

    def test_invalidation_always_shrinks_and_resets_counters(self):
        policy = make_policy()
        for _ in range(12):
            policy.record_hit()

        policy.notify_invalidation()

        assert policy.get_ttl() == 240.0
        state = policy.state()
        assert state.hit_count == 0
        assert state.miss_count == 0

    def test_invalidation_clamps_to_min(self):
        policy = make_policy(initial_ttl=60.0)
        policy.notify_invalidation()
        assert policy.get_ttl() == 60.0

    def test_reset_restores_initial_ttl(self):
        policy = make_policy()
        policy.notify_invalidation()
        policy.notify_invalidation()
        policy.record_hit()

        policy.reset()

        assert policy.get_ttl() == 300.0
        assert policy.state().hit_count == 0

    def test_ttl_stays_within_bounds_for_random_sequences(self):
        rng = random.Random(1234)
        clock = FakeClock()
        policy = make_policy(clock, sample_size=5)

        for _ in range(2000):
            roll = rng.random()
            if roll < 0.45:
                policy.record_hit()
            elif roll < 0.9:
                policy.record_miss()
            elif roll < 0.95:
                policy.notify_invalidation()
            else:
                clock.advance(rng.uniform(0, 300))
            assert 60.0 <= policy.get_ttl() <= 900.0
