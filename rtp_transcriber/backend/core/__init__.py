"""Lifecycle contracts and runtime metrics."""
