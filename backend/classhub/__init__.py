"""Classhub realtime notification and engagement backend."""
