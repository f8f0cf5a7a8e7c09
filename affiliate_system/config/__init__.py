"""Tier ladder, status machine and settings loaders."""
