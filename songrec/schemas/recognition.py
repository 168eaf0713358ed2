"""Schema for a recognised track."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class RecognitionResult(BaseModel):
    song_name: str
    artist_name: str
    album_name: Optional[str] = None
    track_key: str = ""
    release_year: Optional[str] = None
    genre: Optional[str] = None
    cover_art_url: Optional[str] = None
    recognition_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    raw_response: Dict[str, Any] = Field(default_factory=dict)

    def display(self) -> str:
        return f"{self.artist_name} - {self.song_name}"
