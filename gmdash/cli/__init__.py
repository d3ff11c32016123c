"""Command-line interface for gmdash."""
