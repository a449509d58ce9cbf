"""
Pipeline Engine — Declarative, ordered processor chains per target.
"""
