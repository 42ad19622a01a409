"""
Core modules for AI Usage Tracker.

This package contains log discovery, incremental scanning, pricing,
cost aggregation and the concurrent provider fetch orchestrator.
"""
