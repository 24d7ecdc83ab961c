"""Shared helpers: input validation and performance monitoring."""
