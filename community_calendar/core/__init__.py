"""Core utilities: community-local time, configuration and logging."""
