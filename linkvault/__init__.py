"""LinkVault: expiring, password-protected share links for text and files."""

__version__ = "1.0.0"
