"""Support portal sync service."""
