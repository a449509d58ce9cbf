"""
Target Registry — Deployment targets and their configuration models.
"""
