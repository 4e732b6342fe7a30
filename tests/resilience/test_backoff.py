"""Tests for the shared exponential backoff schedule."""

from obsdash.resilience.backoff import BackoffConfig, calculate_delay, delay_schedule


class TestBackoffConfig:
    def test_defaults(self):
        cfg = BackoffConfig()
        assert cfg.base_delay == 1.0
        assert cfg.factor == 2.0
        assert cfg.max_delay == 60.0


class TestCalculateDelay:
    def test_first_step(self):
        assert calculate_delay(1, BackoffConfig()) == 1.0

    def test_second_step(self):
        assert calculate_delay(2, BackoffConfig()) == 2.0

    def test_third_step(self):
        assert calculate_delay(3, BackoffConfig()) == 4.0

    def test_max_delay_cap(self):
        cfg = BackoffConfig(base_delay=10.0, factor=10.0, max_delay=50.0)
        assert calculate_delay(3, cfg) == 50.0

    def test_default_schedule_caps_at_sixty(self):
        assert calculate_delay(7, BackoffConfig()) == 60.0
        assert calculate_delay(20, BackoffConfig()) == 60.0

    def test_step_below_one_treated_as_first(self):
        assert calculate_delay(0, BackoffConfig()) == 1.0

    def test_deterministic(self):
        cfg = BackoffConfig(base_delay=0.5, factor=3.0)
        assert [calculate_delay(4, cfg) for _ in range(5)] == [13.5] * 5


class TestDelaySchedule:
    def test_first_steps(self):
        assert delay_schedule(4, BackoffConfig()) == [1.0, 2.0, 4.0, 8.0]

    def test_empty(self):
        assert delay_schedule(0, BackoffConfig()) == []
