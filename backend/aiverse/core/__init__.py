"""Core infrastructure: configuration, logging, storage, security and the key pool."""
