"""Shared helpers: logging, errors, clocks, identifiers, caching."""
