"""Core infrastructure: configuration, logging, authentication, tokens."""
