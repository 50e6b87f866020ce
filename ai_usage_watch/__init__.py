"""
AI Usage Watch.

Live, deduplicated aggregation of append-only usage logs.
"""

__version__ = "0.1.0"
