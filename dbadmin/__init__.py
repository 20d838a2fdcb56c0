"""Workspace database administration layer."""
