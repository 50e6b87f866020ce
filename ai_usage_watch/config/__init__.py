"""
Configuration loading for AI Usage Watch.
"""
