"""Observability: tracing and metrics for engine stages and target builds."""
