"""Object storage for rendered media."""
