"""Shortcut REST API transport."""
