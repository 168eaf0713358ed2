"""Pydantic schemas."""

from .recognition import RecognitionResult

__all__ = ["RecognitionResult"]
