from .resource_monitor import DEFAULT_POLL_INTERVAL, ResourceMonitor, SystemSnapshot

__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "ResourceMonitor",
    "SystemSnapshot",
]
