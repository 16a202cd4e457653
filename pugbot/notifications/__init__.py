"""Tiered per-recipient notifications."""
