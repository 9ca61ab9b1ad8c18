"""Cloud sync of session records."""

from pymyozen.sync.remote import HttpRemotePusher, RemotePusher, SimulatedRemotePusher
from pymyozen.sync.scheduler import SyncScheduler

__all__ = ["HttpRemotePusher", "RemotePusher", "SimulatedRemotePusher", "SyncScheduler"]
