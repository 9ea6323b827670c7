"""Shared process plumbing: settings, logging and the redis client."""
