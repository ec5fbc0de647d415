"""Command implementations for the ``buildgraph`` CLI."""
