"""Shared HTTP concerns (middleware, error handlers)."""
