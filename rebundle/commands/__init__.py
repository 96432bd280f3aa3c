"""Command implementations for the rebundle CLI."""
