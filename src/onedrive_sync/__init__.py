"""One-way OneDrive synchronization of a local directory tree."""

__version__ = "0.1.0"
