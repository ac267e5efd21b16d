"""Extract, normalize and sync AI coding assistant chat history."""

__version__ = "0.1.0"
