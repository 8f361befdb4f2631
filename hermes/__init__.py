"""Hermes conversation context engine."""
