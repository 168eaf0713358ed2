"""Formatting of recognition results for display."""

import csv
import io
from enum import Enum
from typing import Optional, Union

from ..core.config.constants import DATETIME_FORMAT
from ..schemas.recognition import RecognitionResult

CSV_COLUMNS = ["Song", "Artist", "Album", "Year", "Genre", "Timestamp"]


class OutputFormat(str, Enum):
    SIMPLE = "simple"
    JSON = "json"
    CSV = "csv"
    CUSTOM = "custom"


def _timestamp(result: RecognitionResult) -> str:
    return result.recognition_timestamp.strftime(DATETIME_FORMAT) + " UTC"


def _csv_line(values) -> str:
    buffer = io.StringIO()
    csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="").writerow(values)
    return buffer.getvalue()


def csv_header() -> str:
    return _csv_line(CSV_COLUMNS)


def format_custom(result: RecognitionResult, template: str) -> str:
    """Fill ``{song}``, ``{artist}``, ``{album}``, ``{year}``, ``{genre}`` and
    ``{timestamp}`` placeholders; missing optional fields read "Unknown"."""
    replacements = {
        "{song}": result.song_name,
        "{artist}": result.artist_name,
        "{album}": result.album_name or "Unknown",
        "{year}": result.release_year or "Unknown",
        "{genre}": result.genre or "Unknown",
        "{timestamp}": _timestamp(result),
    }
    output = template
    for placeholder, value in replacements.items():
        output = output.replace(placeholder, value)
    return output


def format_result(
    result: RecognitionResult,
    output_format: Union[OutputFormat, str] = OutputFormat.SIMPLE,
    template: Optional[str] = None,
) -> str:
    """Render a result in one of the supported output formats.

    Args:
        result: Result to render
        output_format: simple, json, csv or custom
        template: Template for the custom format

    Returns:
        str: The rendered line

    Raises:
        ValueError: If the format is unknown or custom without a template
    """
    output_format = OutputFormat(output_format)

    if output_format is OutputFormat.SIMPLE:
        return result.display()
    if output_format is OutputFormat.JSON:
        return result.model_dump_json()
    if output_format is OutputFormat.CSV:
        return _csv_line(
            [
                result.song_name,
                result.artist_name,
                result.album_name or "",
                result.release_year or "",
                result.genre or "",
                _timestamp(result),
            ]
        )
    if template is None:
        raise ValueError("The custom format needs a template")
    return format_custom(result, template)
