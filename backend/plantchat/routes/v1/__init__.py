"""Versioned REST routes."""
