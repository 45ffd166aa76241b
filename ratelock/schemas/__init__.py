"""Limiter configuration and persisted state models."""
