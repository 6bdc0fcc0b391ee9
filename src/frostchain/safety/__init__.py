"""Safety module: temperature breach detection."""

from frostchain.safety.monitor import BreachMonitor, SeriesVerdict

__all__ = ["BreachMonitor", "SeriesVerdict"]
