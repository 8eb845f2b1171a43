"""Calorie targets, goal planning and weekly reflections."""

__version__ = "0.1.0"
