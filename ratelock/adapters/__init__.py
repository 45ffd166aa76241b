"""Adapters for the limiter's external collaborators.

The consume protocol depends only on the abstract store and lock interfaces,
so in-process, file-based, and Redis backends are interchangeable.
"""
