"""Lifecycle services used by handlers.

The Engine is built lazily by handlers.runtime so importing a handler never
creates AWS clients or database connections.
"""
