"""Input resolution and spatial alignment."""
