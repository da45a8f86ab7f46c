"""Launcher application package."""
