"""Version-control integration."""

from .git import GitIntegrationError, GitProvider, GitRepository

__all__ = ["GitIntegrationError", "GitProvider", "GitRepository"]
