"""Delete providers, plan upgrades and find operator releases for a Cluster API management cluster."""

__version__ = "0.1.0"