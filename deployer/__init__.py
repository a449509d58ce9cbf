"""
Site Deployer — Git-backed target synchronization and deployment pipelines.
"""

__version__ = "1.0.0"
