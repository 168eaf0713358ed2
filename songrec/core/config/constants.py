"""Constants used throughout the recognition client."""

# Audio
SIGNATURE_SAMPLE_RATE = 16000  # the fingerprint is only defined at 16 kHz
SAMPLE_RATE_IDS = {
    8000: 1,
    11025: 2,
    16000: 3,
    32000: 4,
    44100: 5,
    48000: 6,
}
AUDIO_FORMATS = [".mp3", ".wav", ".flac", ".m4a", ".ogg"]

# Wire format
DATA_URI_PREFIX = "data:audio/vnd.shazam.sig;base64,"

# Recognition service
SHAZAM_API_BASE_URL = "https://amp.shazam.com/discovery/v5/en/US/android/-/tag"
SHAZAM_QUERY_PARAMS = {
    "sync": "true",
    "webv3": "true",
    "sampling": "true",
    "connected": "",
    "shazamapiversion": "v3",
    "sharehub": "true",
    "video": "v3",
}
CLIENT_USER_AGENT = "SongRec/0.4.3"
CONTENT_LANGUAGE = "en_US"
REQUEST_TIMEZONE = "Europe/Paris"
REQUEST_GEOLOCATION = {"altitude": 300, "latitude": 45, "longitude": 2}

# Cache durations (in seconds)
CACHE_MEDIUM = 300  # 5 minutes

# Date formats
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
