# tests/helpers/__init__.py
"""Helper utilities for the registration handshake tests."""
