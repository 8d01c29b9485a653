"""csprender - HTML page rendering with Content Security Policy reconciliation."""

__version__ = "0.1.0"
