"""Tests for the energy budget."""

import pytest

from ponder.config import EnergyConfig
from ponder.energy import EnergyLevel, EnergyManager


class TestLevels:
    """Tests for energy bands."""

    @pytest.mark.parametrize("available, level", [
        (100.0, EnergyLevel.MAXIMUM),
        (70.0, EnergyLevel.HIGH),
        (30.0, EnergyLevel.MODERATE),
        (12.0, EnergyLevel.LOW),
        (8.0, EnergyLevel.CRITICAL),
    ])
    def test_level_bands(self, clock, available, level):
        """Available energy maps onto the documented bands."""
        energy = EnergyManager(EnergyConfig(initial=available), clock=clock)

        assert energy.level == level
        assert energy.is_critical == (level == EnergyLevel.CRITICAL)

    def test_starts_full_by_default(self, clock):
        """Without an initial value energy starts at the maximum."""
        energy = EnergyManager(clock=clock)

        assert energy.available == 100.0
        assert energy.ratio == 1.0


class TestConsume:
    """Tests for spending energy."""

    def test_consume_reduces_energy(self, clock):
        """Affordable spends succeed."""
        energy = EnergyManager(clock=clock)

        assert energy.consume(12.0, "evolved trigger")
        assert energy.available == pytest.approx(88.0)

    def test_refuses_below_floor(self, clock):
        """A spend that would cross the floor is refused and changes nothing."""
        energy = EnergyManager(EnergyConfig(initial=12.0), clock=clock)

        assert not energy.consume(10.0)
        assert energy.available == 12.0

    def test_can_afford_respects_floor(self, clock):
        """Affordability matches what consume() would accept."""
        energy = EnergyManager(EnergyConfig(initial=13.0), clock=clock)

        assert energy.can_afford(8.0)
        assert not energy.can_afford(8.5)
        assert energy.available == 13.0

    def test_negative_amount_rejected(self, clock):
        """Negative spends are programming errors."""
        energy = EnergyManager(clock=clock)

        with pytest.raises(ValueError):
            energy.consume(-1.0)


class TestRecovery:
    """Tests for passive recovery and reset."""

    def test_recovers_per_minute(self, clock):
        """Two units per minute by default."""
        energy = EnergyManager(EnergyConfig(initial=50.0), clock=clock)

        gained = energy.recover(clock.now + 300.0)

        assert gained == pytest.approx(10.0)
        assert energy.available == pytest.approx(60.0)

    def test_recovery_capped_at_maximum(self, clock):
        """Recovery never exceeds the maximum."""
        energy = EnergyManager(EnergyConfig(initial=99.0), clock=clock)

        energy.recover(clock.now + 3600.0)

        assert energy.available == 100.0

    def test_reset_restores_maximum(self, clock):
        """Reset refills the budget."""
        energy = EnergyManager(EnergyConfig(initial=6.0), clock=clock)

        energy.reset()

        assert energy.available == 100.0
        assert energy.level == EnergyLevel.MAXIMUM

    def test_snapshot(self, clock):
        """Snapshots expose the current state."""
        energy = EnergyManager(EnergyConfig(initial=25.0), clock=clock)

        snapshot = energy.snapshot()

        assert snapshot.available == 25.0
        assert snapshot.ratio == pytest.approx(0.25)
        assert snapshot.last_update == clock.now
