"""
Shared utilities and infrastructure components.

Logging, database session management, error taxonomy, cursor pagination
and caller identity.
"""
