"""Configuration loading for AI Usage Tracker."""
