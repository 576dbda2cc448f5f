"""Agent registry, provider adapters and chat services."""
