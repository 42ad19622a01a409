"""Command-line interface for AI Usage Tracker."""
