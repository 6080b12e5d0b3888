"""Core infrastructure: configuration, logging, canonical JSON, clock and scheduling."""
