"""Agents module -- user-owned AI agents invited to meetings."""
