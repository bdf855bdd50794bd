"""Agents operating on the availability engine."""
