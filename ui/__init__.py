"""Web front ends consuming the availability engine."""
