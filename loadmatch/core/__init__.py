"""Core application primitives (settings, database, store retries)."""
