"""Temporal worker entry point."""
