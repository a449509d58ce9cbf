"""Monitoring API."""
