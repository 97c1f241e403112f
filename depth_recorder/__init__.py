"""Venue adapters, sinks and the async stream runtime around depth_core."""
