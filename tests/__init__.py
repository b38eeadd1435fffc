"""
Test suite for bitarchive.

- Unit tests for naming, models, services, config and errors
- Integration tests running the archive facade against a GitHub API stub
"""
