"""Desktop QR check-in scanner for event attendance."""

__version__ = "0.1.0"
