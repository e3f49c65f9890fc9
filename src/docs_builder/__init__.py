"""Queue-backed API reference docs builder for npm packages."""

__version__ = "0.1.0"
