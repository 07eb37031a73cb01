"""API-layer helpers for plantchat."""
