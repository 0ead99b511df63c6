"""Command-line interface for the skillpath core."""
