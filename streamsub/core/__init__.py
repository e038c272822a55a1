"""Core application settings, errors and logging."""
