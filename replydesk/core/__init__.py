"""Core infrastructure: exceptions, logging, container, background work."""
