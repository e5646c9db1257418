"""Concrete backends for the pipeline capabilities."""
