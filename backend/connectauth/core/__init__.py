"""Cross-cutting infrastructure: logging and rate limiting."""
