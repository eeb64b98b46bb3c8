"""Cross-context invalidation transports."""

from src.providers.invalidation.local_broadcast import BroadcastHub, LocalBroadcastBus

__all__ = ["BroadcastHub", "LocalBroadcastBus"]
