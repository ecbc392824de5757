"""Command-line management of Synology Virtual Machine Manager guests."""

__version__ = "0.1.0"
