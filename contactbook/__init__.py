"""Contacts API: multi-tenant contact management with JWT authentication."""
