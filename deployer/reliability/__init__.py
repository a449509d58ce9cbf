"""Reliability — transport retries."""
