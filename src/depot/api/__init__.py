"""HTTP API for Depot."""
