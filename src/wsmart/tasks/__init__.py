"""Async task delivery."""
