"""HTTP and WebSocket surface for SyncSphere."""
