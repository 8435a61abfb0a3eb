"""External-facing services: persistence."""
