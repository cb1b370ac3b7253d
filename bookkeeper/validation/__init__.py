"""Validation package."""

from bookkeeper.validation.validator import ImportValidator

__all__ = ["ImportValidator"]
