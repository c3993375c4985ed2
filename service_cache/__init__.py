"""Response cache service."""
