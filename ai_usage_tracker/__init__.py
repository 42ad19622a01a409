"""
AI Usage Tracker.

Aggregates usage, rate-limit, credit and token-cost telemetry from AI
provider accounts into one view.
"""

__version__ = "0.3.0"
