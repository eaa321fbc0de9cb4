"""Core infrastructure: configuration, logging, time and environment."""
