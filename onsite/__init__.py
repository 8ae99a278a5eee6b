"""Onsite scoring sheet for judges at physical competition sites."""
