"""Command line interface for managing roles and permissions."""
