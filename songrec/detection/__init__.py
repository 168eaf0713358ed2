"""Signature generation and song recognition."""

from .recognizer import RecognitionStream, SongRec

__all__ = ["RecognitionStream", "SongRec"]
