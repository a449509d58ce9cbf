"""
Configuration — Environment settings and target YAML loading.
"""
