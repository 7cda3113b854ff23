"""Speech-to-text for incoming voice messages (Groq Whisper API).

Security: audio URLs and transcription text are never logged, only sizes.
"""

import os

import requests

from wsmart.observability.logging import get_logger
from wsmart.observability.redaction import safe_log_context

logger = get_logger(__name__)

GROQ_TRANSCRIPTIONS_URL = "https://api.groq.com/openai/v1/audio/transcriptions"
DEFAULT_MODEL = "whisper-large-v3"
DEFAULT_LANGUAGE = "pt"
PROMPT = "Conversa o áudio em texto de forma clara e precisa."

DOWNLOAD_TIMEOUT = 30
TRANSCRIBE_TIMEOUT = 120


class TranscriptionError(Exception):
    """Audio could not be downloaded or transcribed."""

    pass


def _config() -> dict[str, str]:
    api_key = os.environ.get("GROQ_API_KEY", "")
    if not api_key:
        raise TranscriptionError("GROQ_API_KEY not configured")
    return {
        "api_key": api_key,
        "model": os.environ.get("TRANSCRIPTION_MODEL", DEFAULT_MODEL),
        "language": os.environ.get("TRANSCRIPTION_LANGUAGE", DEFAULT_LANGUAGE),
    }


def transcribe_audio(audio_url: str, session: requests.Session | None = None) -> str:
    """Download an audio file and return its transcription ("" if silent).

    Raises:
        TranscriptionError: Missing API key, download failure or provider error.
    """
    config = _config()
    http = session or requests.Session()

    try:
        audio = http.get(audio_url, timeout=DOWNLOAD_TIMEOUT)
        audio.raise_for_status()
    except requests.RequestException as e:
        raise TranscriptionError(f"audio download failed: {type(e).__name__}") from e

    logger.info(
        "audio downloaded",
        extra={"extra_fields": safe_log_context(size_bytes=len(audio.content))},
    )

    try:
        response = http.post(
            GROQ_TRANSCRIPTIONS_URL,
            headers={"Authorization": f"Bearer {config['api_key']}"},
            files={"file": ("audio.mp3", audio.content, "audio/mpeg")},
            data={
                "model": config["model"],
                "temperature": "0",
                "language": config["language"],
                "response_format": "verbose_json",
                "prompt": PROMPT,
            },
            timeout=TRANSCRIBE_TIMEOUT,
        )
        response.raise_for_status()
        body = response.json()
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        raise TranscriptionError(f"transcription provider returned {status}") from e
    except (requests.RequestException, ValueError) as e:
        raise TranscriptionError(f"transcription request failed: {type(e).__name__}") from e

    text = body.get("text") if isinstance(body, dict) else None
    return text if isinstance(text, str) else ""
