"""Media resolver - durable links and rehosting for non-text messages.

Steps for image/video/audio/document/sticker messages:
1. Ask the provider for a durable download link by external message id
   (audio is transcoded to mp3 by the provider).
2. Infer the file extension from the MIME type; documents without a name
   get `Document.<ext>`.
3. Download and re-upload everything except audio to the media bucket,
   replacing the reference with the owned public URL. Audio stays on the
   provider link.

Every step degrades: a failure keeps whatever reference was already
known (possibly None). Nothing here raises to the caller.

Security: media URLs and tokens are never logged.
"""

import os
import secrets
from dataclasses import dataclass
from typing import Any

import requests
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from wsmart.infra.time import epoch_millis
from wsmart.observability.logging import get_logger
from wsmart.observability.redaction import id_prefix, safe_log_context

from .models import MediaType, NormalizedMessage

logger = get_logger(__name__)

DEFAULT_PROVIDER_URL = "https://wsmart.uazapi.com"
DEFAULT_MEDIA_BUCKET = "helpdesk-media"
DEFAULT_TIMEOUT = 15

MIME_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "video/mp4": "mp4",
    "video/3gpp": "3gp",
    "video/quicktime": "mov",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "m4a",
    "audio/aac": "aac",
    "audio/wav": "wav",
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-powerpoint": "ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "pptx",
    "application/zip": "zip",
    "text/plain": "txt",
    "text/csv": "csv",
}

# Link keys in the provider's download response, in preference order
_AUDIO_LINK_KEYS = ("mp3URL", "mp3Url", "fileURL", "fileUrl", "url")
_LINK_KEYS = ("fileURL", "fileUrl", "url")


class MediaResolutionError(Exception):
    """Provider could not issue a durable media link."""

    pass


class StorageError(Exception):
    """Rehosting into the media bucket failed."""

    pass


def _timeout() -> float:
    try:
        return float(os.environ.get("MEDIA_HTTP_TIMEOUT", DEFAULT_TIMEOUT))
    except ValueError:
        return float(DEFAULT_TIMEOUT)


def extension_for_mime(mime_type: str | None) -> str:
    """File extension for a MIME type (parameters ignored); "bin" if unknown."""
    if not mime_type:
        return "bin"
    base = mime_type.split(";", 1)[0].strip().lower()
    if base in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[base]
    subtype = base.rpartition("/")[2]
    return subtype if subtype.isalnum() and len(subtype) <= 5 else "bin"


@dataclass(frozen=True)
class DurableLink:
    url: str | None
    mime_type: str | None


class ProviderClient:
    """Minimal UAZAPI client for the download-link call."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = (
            base_url or os.environ.get("UAZAPI_SERVER_URL", DEFAULT_PROVIDER_URL)
        ).rstrip("/")
        self._timeout = timeout if timeout is not None else _timeout()
        self._session = session or requests.Session()

    def download_link(
        self, token: str, message_id: str, *, generate_mp3: bool = False
    ) -> DurableLink:
        """Request a durable link for a message's media.

        Raises:
            MediaResolutionError: On network error, non-2xx or an unusable body.
        """
        try:
            response = self._session.post(
                f"{self._base_url}/message/download",
                json={
                    "id": message_id,
                    "return_link": True,
                    "generate_mp3": generate_mp3,
                },
                headers={"token": token, "Content-Type": "application/json"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            body: Any = response.json()
        except (requests.RequestException, ValueError) as e:
            raise MediaResolutionError(type(e).__name__) from e

        if not isinstance(body, dict):
            raise MediaResolutionError("unexpected response body")

        keys = _AUDIO_LINK_KEYS if generate_mp3 else _LINK_KEYS
        url = next((body[k] for k in keys if isinstance(body.get(k), str) and body[k]), None)
        mime = body.get("mimetype") if isinstance(body.get("mimetype"), str) else None
        if generate_mp3 and url and url in (body.get("mp3URL"), body.get("mp3Url")):
            mime = "audio/mpeg"
        if url is None:
            raise MediaResolutionError("response without link")
        return DurableLink(url=url, mime_type=mime)


class MediaStorage:
    """Owned object storage (Google Cloud Storage) for rehosted media."""

    def __init__(
        self,
        bucket_name: str | None = None,
        public_base_url: str | None = None,
        client: Any | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.bucket_name = bucket_name or os.environ.get("MEDIA_BUCKET", DEFAULT_MEDIA_BUCKET)
        self._public_base_url = public_base_url or os.environ.get("MEDIA_PUBLIC_BASE_URL")
        self._client = client
        self._timeout = timeout if timeout is not None else _timeout()
        self._session = session or requests.Session()

    def _get_client(self) -> Any:
        # Lazy: creating storage.Client needs application default credentials
        if self._client is None:
            self._client = storage.Client()
        return self._client

    @staticmethod
    def object_path(prefix: str, mime_type: str | None) -> str:
        """Collision-resistant object path: <prefix>/<unix-ms>_<random>.<ext>."""
        name = f"{epoch_millis()}_{secrets.token_hex(6)}.{extension_for_mime(mime_type)}"
        return f"{prefix.strip('/')}/{name}" if prefix else name

    def rehost(self, source_url: str, mime_type: str | None, prefix: str) -> str:
        """Copy a remote asset into the bucket and return its public URL.

        Raises:
            StorageError: On download or upload failure.
        """
        try:
            response = self._session.get(source_url, timeout=self._timeout)
            response.raise_for_status()
            data = response.content
        except requests.RequestException as e:
            raise StorageError(f"download failed: {type(e).__name__}") from e

        content_type = mime_type or response.headers.get("Content-Type") or "application/octet-stream"
        object_path = self.object_path(prefix, content_type)
        try:
            blob = self._get_client().bucket(self.bucket_name).blob(object_path)
            blob.upload_from_string(data, content_type=content_type)
        except (GoogleAPIError, GoogleAuthError, requests.RequestException) as e:
            raise StorageError(f"upload failed: {type(e).__name__}") from e

        if self._public_base_url:
            return f"{self._public_base_url.rstrip('/')}/{object_path}"
        return blob.public_url


def resolve_media(
    message: NormalizedMessage,
    *,
    token: str,
    provider: ProviderClient,
    media_storage: MediaStorage,
    prefix: str,
) -> NormalizedMessage:
    """Return `message` with a durable media reference, best effort."""
    if not message.is_media:
        return message

    is_audio = message.media_type is MediaType.AUDIO
    url = message.media_url
    mime_type = message.mime_type
    log_ctx = dict(
        message_id_prefix=id_prefix(message.external_id),
        media_type=message.media_type.value,
    )

    if message.external_id and token:
        try:
            link = provider.download_link(token, message.external_id, generate_mp3=is_audio)
            url = link.url or url
            mime_type = link.mime_type or mime_type
        except MediaResolutionError as e:
            logger.warning(
                "durable media link unavailable, keeping previous reference",
                extra={"extra_fields": safe_log_context(**log_ctx, error=str(e))},
            )
    else:
        logger.info(
            "media link lookup skipped",
            extra={
                "extra_fields": safe_log_context(
                    **log_ctx,
                    has_external_id=bool(message.external_id),
                    has_token=bool(token),
                )
            },
        )

    file_name = message.file_name
    content = message.content
    if message.media_type is MediaType.DOCUMENT and not file_name:
        file_name = f"Document.{extension_for_mime(mime_type)}"
        content = content or file_name

    if url and not is_audio:
        try:
            url = media_storage.rehost(url, mime_type, prefix)
        except StorageError as e:
            logger.warning(
                "media rehost failed, keeping provider link",
                extra={"extra_fields": safe_log_context(**log_ctx, error=str(e))},
            )

    return message.evolve(
        media_url=url,
        mime_type=mime_type,
        file_name=file_name,
        content=content,
    )
