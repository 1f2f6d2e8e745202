"""Wellness workers: daily aggregation and timeline layout for pillar records."""
