"""Command implementations for the mapref CLI."""
