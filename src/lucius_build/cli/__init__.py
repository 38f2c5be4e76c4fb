"""Command line interface for lucius-build."""
