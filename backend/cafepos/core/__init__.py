"""Core utilities: configuration, security, errors."""
