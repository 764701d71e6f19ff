"""Core infrastructure: settings and synchronization primitives."""
