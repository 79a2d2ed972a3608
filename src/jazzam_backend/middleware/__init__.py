"""Tenant resolution for incoming requests."""
