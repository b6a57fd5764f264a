"""Email filter rules and conditional forwarding for a webmail client."""

__version__ = "0.1.0"
