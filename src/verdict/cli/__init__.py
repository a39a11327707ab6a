"""Verdict command-line interface."""
