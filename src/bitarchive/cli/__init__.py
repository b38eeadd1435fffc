"""Command-line tasks for bitarchive (invoke)."""
