"""CLI command groups for the deployer."""
