"""Metrics exposition for plantchat."""
