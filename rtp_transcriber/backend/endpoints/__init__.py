"""HTTP observability endpoints."""
