"""
Processors — Pluggable deployment pipeline stages.
"""
