"""Antimat API."""
