"""Command-line interface for mocochat."""
