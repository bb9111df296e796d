"""HTTP surface and component wiring."""
