"""
Storage layer for AI Usage Tracker.

Persists the incremental token-cost cache between runs.
"""
