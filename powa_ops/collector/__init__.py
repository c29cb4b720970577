from .scheduler import SnapshotScheduler, TickResult, compute_wait

__all__ = ["SnapshotScheduler", "TickResult", "compute_wait"]
