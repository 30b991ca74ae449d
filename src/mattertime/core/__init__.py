"""Core timing and matter-suggestion logic."""
