"""Autonomous job discovery, scoring and application agent."""
