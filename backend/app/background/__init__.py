from .runner import PeriodicSweeper, SweepJob

__all__ = ["PeriodicSweeper", "SweepJob"]
