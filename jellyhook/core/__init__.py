"""Core modules for jellyhook."""
