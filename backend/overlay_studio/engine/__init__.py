"""Overlay generation engine."""
