"""Shelter proximity and routing service."""
