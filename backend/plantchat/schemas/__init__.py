"""Pydantic schemas for REST and WebSocket payloads."""
