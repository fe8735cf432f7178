"""SyncSphere device data-recovery backend."""

__version__ = "0.1.0"
