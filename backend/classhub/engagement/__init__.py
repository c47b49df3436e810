"""Engagement, notification and realtime fan-out for classhub."""
