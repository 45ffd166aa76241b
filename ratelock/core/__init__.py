"""Configuration, errors, and logging shared across the package."""
