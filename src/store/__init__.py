"""Document store collaborators.

This module persists unified records keyed by ``unifiedId``.
It provides an in-memory store and a MongoDB-backed store.
"""
