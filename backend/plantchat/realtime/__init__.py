"""Realtime delivery: connection registry, fan-out router, WebSocket gateway."""
