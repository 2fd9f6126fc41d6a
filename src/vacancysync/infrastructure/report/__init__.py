"""Audit artifact writers."""
