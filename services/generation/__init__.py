"""Reel generation: job store, stage pipeline, priority queue and metrics."""
