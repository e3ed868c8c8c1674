"""Review pipeline services."""
