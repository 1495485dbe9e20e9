"""API package for the user files service."""
