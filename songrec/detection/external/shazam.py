"""
Shazam recognition service integration.

A signature is posted as a data URI together with a fixed geolocation and
timezone. Delivery walks a ladder of transport policies, one per attempt,
each more conservative than the last, with a fixed pause between attempts.
Only transport failures, non-2xx statuses and unparseable bodies move to
the next rung; a well-formed answer without matches is final.
"""

import ssl
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter

from ...core.config import RecognitionConfig, get_settings
from ...core.config.constants import (
    CLIENT_USER_AGENT,
    CONTENT_LANGUAGE,
    REQUEST_GEOLOCATION,
    REQUEST_TIMEZONE,
    SHAZAM_QUERY_PARAMS,
)
from ...core.exceptions import (
    InvalidResponseError,
    NoMatchError,
    ServiceUnavailableError,
)
from ...schemas.recognition import RecognitionResult
from ...utils.logging import log_with_category, setup_logging
from ..audio_processor.signature_format import Signature
from .user_agents import random_user_agent

logger = setup_logging(__name__)


class TLSAdapter(HTTPAdapter):
    """HTTPAdapter that hands a prepared SSL context to urllib3."""

    def __init__(self, ssl_context: Optional[ssl.SSLContext] = None, **kwargs):
        self.ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        if self.ssl_context is not None:
            kwargs["ssl_context"] = self.ssl_context
        return super().init_poolmanager(*args, **kwargs)


@dataclass(frozen=True)
class TransportPolicy:
    """HTTP client settings used for one delivery attempt."""

    name: str
    pool_maxsize: int = 10
    keep_alive: bool = True
    client_user_agent: Optional[str] = CLIENT_USER_AGENT
    rotate_user_agent: bool = True
    minimum_tls_version: Optional[ssl.TLSVersion] = None
    ciphers: Optional[str] = None
    timeout: Optional[float] = None

    def build_ssl_context(self) -> Optional[ssl.SSLContext]:
        if self.minimum_tls_version is None and self.ciphers is None:
            return None
        context = ssl.create_default_context()
        if self.minimum_tls_version is not None:
            context.minimum_version = self.minimum_tls_version
        if self.ciphers is not None:
            context.set_ciphers(self.ciphers)
        return context

    def build_session(self) -> requests.Session:
        """Create a requests session configured for this policy."""
        session = requests.Session()
        adapter = TLSAdapter(
            ssl_context=self.build_ssl_context(),
            pool_connections=self.pool_maxsize,
            pool_maxsize=self.pool_maxsize,
            max_retries=0,
        )
        session.mount("https://", adapter)
        session.mount("http://", HTTPAdapter(pool_maxsize=self.pool_maxsize, max_retries=0))
        if self.client_user_agent:
            session.headers["User-Agent"] = self.client_user_agent
        else:
            session.headers.pop("User-Agent", None)
        if not self.keep_alive:
            session.headers["Connection"] = "close"
        return session


DEFAULT_TRANSPORT_LADDER = (
    TransportPolicy("pooled", pool_maxsize=10, keep_alive=True),
    TransportPolicy("basic", pool_maxsize=1, keep_alive=False),
    TransportPolicy(
        "legacy",
        pool_maxsize=1,
        keep_alive=False,
        client_user_agent=None,
        rotate_user_agent=False,
        ciphers="DEFAULT:@SECLEVEL=1",
    ),
)


def _first_text(items: Any) -> Optional[str]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        text = items[0].get("text")
        if isinstance(text, str):
            return text
    return None


def parse_recognition_response(response: Any) -> RecognitionResult:
    """Extract track details from a service response.

    Args:
        response: Decoded JSON body

    Returns:
        RecognitionResult: The recognised track

    Raises:
        InvalidResponseError: If the body has no matches array or no track
        NoMatchError: If the matches array is empty
    """
    if not isinstance(response, dict):
        raise InvalidResponseError("Invalid response format: expected a JSON object")

    matches = response.get("matches")
    if not isinstance(matches, list):
        raise InvalidResponseError("Invalid response format: no matches array")
    if not matches:
        raise NoMatchError("No track found in response")

    track = response.get("track")
    if not isinstance(track, dict):
        raise InvalidResponseError("No track found in response")

    sections = track.get("sections")
    metadata = []
    if isinstance(sections, list) and sections and isinstance(sections[0], dict):
        metadata = sections[0].get("metadata") or []

    release_year = None
    if isinstance(metadata, list):
        for item in metadata:
            if isinstance(item, dict) and item.get("title") == "Released":
                text = item.get("text")
                release_year = text if isinstance(text, str) else None
                break

    genres = track.get("genres")
    genre = genres.get("primary") if isinstance(genres, dict) else None
    images = track.get("images")
    cover_art_url = images.get("coverart") if isinstance(images, dict) else None

    def text_field(name: str, default: str) -> str:
        value = track.get(name)
        return value if isinstance(value, str) else default

    return RecognitionResult(
        song_name=text_field("title", "Unknown"),
        artist_name=text_field("subtitle", "Unknown"),
        album_name=_first_text(metadata),
        track_key=text_field("key", ""),
        release_year=release_year,
        genre=genre if isinstance(genre, str) else None,
        cover_art_url=cover_art_url if isinstance(cover_art_url, str) else None,
        raw_response=response,
    )


class ShazamService:
    """Client for the Shazam tag endpoint."""

    def __init__(
        self,
        config: Optional[RecognitionConfig] = None,
        policies: Optional[Sequence[TransportPolicy]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the service.

        Args:
            config: Recognition configuration (defaults to the cached settings)
            policies: Transport ladder, one rung per attempt; the last rung
                is reused when there are more attempts than rungs
            sleep: Pause function used between attempts
        """
        self.config = config or get_settings()
        self.policies: List[TransportPolicy] = list(policies or DEFAULT_TRANSPORT_LADDER)
        if not self.policies:
            raise ValueError("At least one transport policy is required")
        self.sleep = sleep
        self._sessions: Dict[str, requests.Session] = {}

    def build_request_url(self) -> str:
        return (
            f"{self.config.api_base_url.rstrip('/')}/"
            f"{str(uuid.uuid4()).upper()}/{uuid.uuid4()}"
        )

    def build_headers(self, policy: Optional[TransportPolicy] = None) -> Dict[str, str]:
        """Per-request headers; the Android user agent is left out when the policy opts out."""
        headers = {"Content-Language": CONTENT_LANGUAGE}
        if policy is None or policy.rotate_user_agent:
            headers["User-Agent"] = random_user_agent()
        return headers

    def build_payload(self, signature: Signature, timestamp_ms: Optional[int] = None) -> Dict[str, Any]:
        """Build the JSON body for a signature.

        The timestamp is the current time in milliseconds wrapped to 32 bits.
        """
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000) & 0xFFFFFFFF
        return {
            "geolocation": dict(REQUEST_GEOLOCATION),
            "signature": {
                "samplems": int(signature.number_samples / signature.sample_rate_hz * 1000),
                "timestamp": timestamp_ms,
                "uri": signature.to_request_uri(),
            },
            "timestamp": timestamp_ms,
            "timezone": REQUEST_TIMEZONE,
        }

    def policy_for_attempt(self, attempt: int) -> TransportPolicy:
        """Policy for a 1-based attempt number."""
        return self.policies[min(attempt, len(self.policies)) - 1]

    def send_signature(self, signature: Signature) -> Dict[str, Any]:
        """Post a signature, walking the transport ladder.

        Args:
            signature: Signature to submit

        Returns:
            Dict[str, Any]: The decoded response body

        Raises:
            ServiceUnavailableError: If every attempt failed
        """
        url = self.build_request_url()
        payload = self.build_payload(signature)
        attempts = self.config.max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            policy = self.policy_for_attempt(attempt)
            log_with_category(
                logger, "SHAZAM", "debug", f"Attempt {attempt}/{attempts} using {policy.name} transport"
            )
            try:
                response = self._post(policy, url, payload, self.build_headers(policy))
                log_with_category(logger, "SHAZAM", "debug", f"Raw response (attempt {attempt}): {response}")
                return response
            except (requests.RequestException, ValueError, ssl.SSLError) as e:
                last_error = e
                log_with_category(logger, "SHAZAM", "warning", f"Attempt {attempt} failed: {e}")

            if attempt < attempts:
                log_with_category(
                    logger, "SHAZAM", "debug", f"Waiting {self.config.retry_backoff} seconds before retry"
                )
                self.sleep(self.config.retry_backoff)

        raise ServiceUnavailableError(
            f"All API requests failed (last error: {last_error})", attempts=attempts
        )

    def recognize(self, signature: Signature) -> RecognitionResult:
        """Submit a signature and parse the answer.

        Raises:
            ServiceUnavailableError: If the service could not be reached
            NoMatchError: If nothing was recognised
            InvalidResponseError: If the answer cannot be interpreted
        """
        response = self.send_signature(signature)
        result = parse_recognition_response(response)
        log_with_category(logger, "SHAZAM", "info", f"Recognised: {result.display()}")
        return result

    def fetch_cover_art(self, url: str) -> bytes:
        """Download a cover image with the first transport policy."""
        policy = self.policies[0]
        session = self._session_for(policy)
        try:
            response = session.get(
                url, headers=self.build_headers(policy), timeout=self._timeout_for(policy)
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ServiceUnavailableError(f"Cannot fetch cover art: {e}", attempts=1) from e
        return response.content

    def close(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()

    def _timeout_for(self, policy: TransportPolicy) -> float:
        return policy.timeout if policy.timeout is not None else self.config.network_timeout

    def _session_for(self, policy: TransportPolicy) -> requests.Session:
        session = self._sessions.get(policy.name)
        if session is None:
            session = policy.build_session()
            self._sessions[policy.name] = session
        return session

    def _post(
        self, policy: TransportPolicy, url: str, payload: Dict[str, Any], headers: Dict[str, str]
    ) -> Dict[str, Any]:
        if policy.keep_alive:
            session = self._session_for(policy)
            response = session.post(
                url, params=SHAZAM_QUERY_PARAMS, headers=headers, json=payload,
                timeout=self._timeout_for(policy),
            )
        else:
            with policy.build_session() as session:
                response = session.post(
                    url, params=SHAZAM_QUERY_PARAMS, headers=headers, json=payload,
                    timeout=self._timeout_for(policy),
                )
        if not 200 <= response.status_code < 300:
            raise requests.HTTPError(
                f"HTTP error: {response.status_code} {response.reason}", response=response
            )
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"Expected a JSON object, got {type(body).__name__}")
        return body
