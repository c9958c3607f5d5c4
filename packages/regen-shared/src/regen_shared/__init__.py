"""Shared gateways and output helpers for regen."""
