"""Slugforge command-line interface."""
