"""Command-line interface for LiftForge."""
