"""
Storage layer for AI Usage Watch.

In-memory record model and raw record cache; nothing here is persisted.
"""
