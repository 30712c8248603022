"""Core infrastructure: configuration, logging and the application factory."""
