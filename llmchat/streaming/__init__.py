"""SSE parsing, event classification and relay translation."""
