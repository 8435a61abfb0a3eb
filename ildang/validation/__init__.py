"""Validation package."""

from ildang.validation.validator import ValidationError, WorkLogValidator

__all__ = ["ValidationError", "WorkLogValidator"]
