"""Realtime delivery: routes, dispatcher and the Socket.IO namespace."""
