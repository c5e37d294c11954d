"""
Tests for tension scoring and stasis detection.
"""

import pytest

from web_harvest.crawler import PhaseObservation, TensionMeter, TensionState, TensionWeights


class TestTensionWeights:
    """Tests for TensionWeights validation."""

    def test_defaults(self):
        weights = TensionWeights()

        assert weights.discoveries == 0.6
        assert weights.duplicates == 0.3

    def test_positive_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            TensionWeights(discoveries=0.5)

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError):
            TensionWeights(duplicates=-0.1)


class TestTensionMeter:
    """Tests for TensionMeter."""

    @pytest.fixture
    def meter(self) -> TensionMeter:
        return TensionMeter()

    def test_first_productive_phase(self, meter: TensionMeter):
        """The first productive phase is its own maximum on every component."""
        tension = meter.score(PhaseObservation(new_discoveries=10, new_network_hosts=1, dom_growth_bytes=500))

        assert tension == 1.0

    def test_normalized_against_running_max(self, meter: TensionMeter):
        """Later phases are measured against the best phase so far."""
        meter.score(PhaseObservation(new_discoveries=10, new_network_hosts=1))

        assert meter.score(PhaseObservation(new_discoveries=5)) == pytest.approx(0.3)

    def test_zero_yield_is_zero(self, meter: TensionMeter):
        meter.score(PhaseObservation(new_discoveries=10))

        assert meter.score(PhaseObservation()) == 0.0

    def test_zero_yield_capped(self, meter: TensionMeter):
        """Host and DOM activity without discoveries stays below the cap."""
        tension = meter.score(PhaseObservation(new_network_hosts=2, dom_growth_bytes=1000))

        assert tension == TensionMeter.ZERO_YIELD_CAP

    def test_duplicates_reduce_tension(self, meter: TensionMeter):
        tension = meter.score(PhaseObservation(new_discoveries=10, duplicated_discoveries=4))

        assert tension == pytest.approx(0.3)

    def test_clamped_to_unit_interval(self, meter: TensionMeter):
        """Heavy duplication should clamp at zero, never go negative."""
        meter.score(PhaseObservation(new_discoveries=10))
        tension = meter.score(PhaseObservation(new_discoveries=1, duplicated_discoveries=50))

        assert tension == 0.0

    def test_negative_growth_ignored(self, meter: TensionMeter):
        tension = meter.score(PhaseObservation(new_discoveries=1, dom_growth_bytes=-300))

        assert tension == pytest.approx(0.6)

    def test_reset(self, meter: TensionMeter):
        meter.score(PhaseObservation(new_discoveries=100))
        meter.reset()

        assert meter.score(PhaseObservation(new_discoveries=1)) == pytest.approx(0.6)


class TestTensionState:
    """Tests for the sliding window."""

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            TensionState(window=0)

    def test_stasis_requires_full_window(self):
        """Stasis needs `window` consecutive low values."""
        state = TensionState(window=3)
        state.push(0.1)
        state.push(0.2)

        assert not state.is_stasis(0.5)

        state.push(0.5)

        assert state.is_stasis(0.5)

    def test_high_value_breaks_stasis(self):
        state = TensionState(window=2)
        for value in (0.1, 0.1, 0.9):
            state.push(value)

        assert not state.is_stasis(0.5)
        assert state.recent == [0.1, 0.9]

    def test_history_and_average(self):
        state = TensionState(window=2)
        for value in (0.8, 0.4, 0.0):
            state.push(value)

        assert state.history == [0.8, 0.4, 0.0]
        assert state.average == pytest.approx(0.4)

    def test_empty_average(self):
        assert TensionState().average == 0.0
