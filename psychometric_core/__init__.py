"""Psychometric scoring and validity engine."""
