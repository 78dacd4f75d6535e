"""Shared utilities for the secret engine."""
