"""Shared packages for the urban heat risk tools."""
