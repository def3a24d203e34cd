"""Synthetic walkthrough generation for development and testing."""
