"""Contamination correction, statistics and reporting."""
