"""Live lecture notes worker."""
