"""Inference gateway: the boundary to the external vision backend.

The gateway turns an image payload into the backend's analysis text. It never
raises for expected failures; callers get an explicit ``AnalysisSuccess`` or
``AnalysisFailure`` and never need to inspect backend exception shapes.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import anyio
from google import genai
from google.genai import types as genai_types

from visionstruct.exceptions import BackendError, ConfigurationError, ValidationError, VisionStructError
from visionstruct.instructions import ANALYSIS_DIRECTIVE, VISION_SYSTEM_INSTRUCTION
from visionstruct.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"

_DATA_URI_PREFIX = re.compile(r"^data:(?P<mime_type>[^,;]*)[^,]*?;base64,", re.IGNORECASE)
_CODE_FENCE = re.compile(r"\A\s*```[\w-]*[ \t]*\n?|\n?```\s*\Z")


@dataclass(frozen=True)
class AnalysisSuccess:
    text: str


@dataclass(frozen=True)
class AnalysisFailure:
    error: VisionStructError

    @property
    def message(self) -> str:
        return str(self.error)


AnalysisResult = AnalysisSuccess | AnalysisFailure


class VisionBackend(Protocol):
    """A single request/response call to a vision model."""

    async def generate(
        self,
        *,
        image: bytes,
        mime_type: str,
        directive: str,
        system_instruction: str,
    ) -> str | None: ...


BackendFactory = Callable[[Settings], VisionBackend]


class GeminiBackend:
    """Vision backend backed by the Google Gemini API."""

    def __init__(self, api_key: str, model: str):
        self._client = genai.Client(api_key=api_key)
        self._model = model

    @classmethod
    def from_settings(cls, settings: Settings) -> GeminiBackend:
        if settings.api_key is None or not settings.api_key.get_secret_value():
            raise ConfigurationError("API_KEY environment variable is missing.")
        return cls(settings.api_key.get_secret_value(), settings.model)

    async def generate(
        self,
        *,
        image: bytes,
        mime_type: str,
        directive: str,
        system_instruction: str,
    ) -> str | None:
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=[genai_types.Part.from_bytes(data=image, mime_type=mime_type), directive],
            config=genai_types.GenerateContentConfig(system_instruction=system_instruction),
        )
        return response.text


def strip_code_fences(text: str) -> str:
    """Remove the markdown code fence wrapping the model's output.

    Only a fence opening the text or closing it is removed; backticks inside the
    payload are left alone.
    """
    return _CODE_FENCE.sub("", text).strip()


def data_uri_mime_type(image: str | bytes) -> str | None:
    """Return the media type declared by a ``data:`` URI payload, if it declares one."""
    if isinstance(image, bytes):
        return None
    match = _DATA_URI_PREFIX.match(image.strip())
    if match is None:
        return None
    return match.group("mime_type") or None


def decode_image_payload(image: str | bytes) -> bytes:
    """Decode transport-encoded image data into raw bytes.

    Text is treated as base64, optionally prefixed with a ``data:<mime>;base64,``
    URI header. Bytes are assumed to be already decoded.
    """
    if isinstance(image, bytes):
        if not image:
            raise ValidationError("image must not be empty")
        return image

    data = _DATA_URI_PREFIX.sub("", image.strip(), count=1)
    data = "".join(data.split())
    if not data:
        raise ValidationError("image must not be empty")
    try:
        decoded = base64.b64decode(data, validate=True)
    except binascii.Error as e:
        raise ValidationError(f"image is not valid base64 data: {e}") from e
    if not decoded:
        raise ValidationError("image must not be empty")
    return decoded


class InferenceGateway:
    """Runs one image analysis per call against the configured backend.

    There are no retries. The backend is created lazily on first use so that a
    server without credentials still starts; only analysis calls fail.
    """

    def __init__(self, settings: Settings, backend_factory: BackendFactory = GeminiBackend.from_settings):
        self._settings = settings
        self._backend_factory = backend_factory
        self._backend: VisionBackend | None = None

    def _get_backend(self) -> VisionBackend:
        if self._backend is None:
            self._backend = self._backend_factory(self._settings)
        return self._backend

    async def analyze(self, image: str | bytes, mime_type: str | None = None) -> AnalysisResult:
        if not self._settings.has_api_key:
            return AnalysisFailure(ConfigurationError("API_KEY environment variable is missing."))

        try:
            image_bytes = decode_image_payload(image)
        except ValidationError as e:
            return AnalysisFailure(e)

        mime_type = mime_type or data_uri_mime_type(image) or DEFAULT_MIME_TYPE
        timeout = self._settings.backend_timeout
        logger.debug("Analyzing %d bytes of %s", len(image_bytes), mime_type)
        try:
            with anyio.fail_after(timeout):
                text = await self._get_backend().generate(
                    image=image_bytes,
                    mime_type=mime_type,
                    directive=ANALYSIS_DIRECTIVE,
                    system_instruction=VISION_SYSTEM_INSTRUCTION,
                )
        except TimeoutError:
            logger.warning("Vision backend call timed out after %ss", timeout)
            return AnalysisFailure(BackendError(f"Vision backend call timed out after {timeout}s"))
        except VisionStructError as e:
            return AnalysisFailure(e)
        except Exception as e:
            logger.warning("Vision backend call failed: %s", e)
            return AnalysisFailure(BackendError(str(e)))

        return AnalysisSuccess(strip_code_fences(text or ""))
