"""Configuration and logging helpers for the rep route planner."""
