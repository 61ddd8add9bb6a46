"""Peripheral transport implementations."""
