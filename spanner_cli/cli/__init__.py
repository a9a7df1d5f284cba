"""Command-line interface for spanner-cli."""
