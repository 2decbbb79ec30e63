"""State layer.

The telemetry store is the single source of truth for per-message
updates; the projector derives the vehicle list every consumer reads.
"""
