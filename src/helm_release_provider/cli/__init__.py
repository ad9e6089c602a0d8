"""Local operator CLI."""
