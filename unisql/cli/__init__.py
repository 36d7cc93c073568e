"""Command line interface for unisql."""
