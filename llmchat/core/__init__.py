"""Core infrastructure: errors, logging and HTTP clients."""
