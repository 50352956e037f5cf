"""Endpoint modules for NINA's Advanced API."""
