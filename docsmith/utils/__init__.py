"""Shared utilities for the docsmith service."""
