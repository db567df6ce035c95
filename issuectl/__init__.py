"""issuectl: lock and discovery tooling for a shared, versioned issue tree."""

__version__ = "0.1.0"
