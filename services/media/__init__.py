"""Image resolution, subtitle timing and video composition."""
