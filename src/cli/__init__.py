"""Command line interface for acpied."""
