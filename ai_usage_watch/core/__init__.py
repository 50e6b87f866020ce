"""
Core modules for AI Usage Watch.

This package contains deduplication, windowed aggregation, scheduling,
pricing and live snapshot building.
"""
