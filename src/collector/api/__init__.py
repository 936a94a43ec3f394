"""HTTP query interface over persisted snapshots."""
