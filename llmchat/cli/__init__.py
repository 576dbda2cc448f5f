"""Command line interface for the LLMChat gateway."""
