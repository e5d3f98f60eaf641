"""Timing recorders and the per-transaction metric table."""
