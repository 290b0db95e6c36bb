"""Tenant console: session tracking client and user administration API."""

__version__ = "0.1.0"
