"""Limiter algorithms, consume protocol, overflow handling, and the retry loop."""
