"""Parsing, resolution and execution services."""
