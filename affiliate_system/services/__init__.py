"""Affiliate engine services."""
