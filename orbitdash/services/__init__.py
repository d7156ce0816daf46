"""Metrics pipeline and service catalog."""
