"""Connection supervision and reconnect backoff."""

from pymyozen.supervision.policy import Backoff, compute_backoff_ms
from pymyozen.supervision.supervisor import ConnectionSupervisor

__all__ = ["Backoff", "ConnectionSupervisor", "compute_backoff_ms"]
