"""
Speech-to-text via LiteLLM.

Browsers record in different containers (webm from Chrome, mp4/m4a from
Safari, wav from native clients) and uploads rarely say which one they are.
The transcriber sniffs the container from its magic bytes, tries that format
first, and falls back to the remaining supported formats in turn.
"""

import io
from typing import List, Optional

import litellm

from simpatient.errors import TranscriptionError
from simpatient.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_FORMATS = ["webm", "wav", "mp3", "mp4", "m4a"]


def sniff_audio_format(audio: bytes) -> Optional[str]:
    """Guess the container of ``audio`` from its header, or None."""
    head = audio[:16]
    if head[:4] == b"RIFF" and head[8:12] == b"WAVE":
        return "wav"
    if head[:4] == b"\x1a\x45\xdf\xa3":  # EBML (webm / matroska)
        return "webm"
    if head[:3] == b"ID3" or (len(head) > 1 and head[0] == 0xFF and head[1] & 0xE0 == 0xE0):
        return "mp3"
    if head[4:8] == b"ftyp":
        brand = head[8:12]
        if brand.startswith(b"M4A"):
            return "m4a"
        return "mp4"
    return None


def candidate_formats(audio: bytes) -> List[str]:
    """Supported formats ordered with the sniffed one first."""
    sniffed = sniff_audio_format(audio)
    if sniffed is None:
        return list(SUPPORTED_FORMATS)
    return [sniffed] + [fmt for fmt in SUPPORTED_FORMATS if fmt != sniffed]


class Transcriber:
    """Transcribes uploaded audio with a LiteLLM STT model.

    Args:
        model: LiteLLM model string (e.g. "whisper-1", "groq/whisper-large-v3").
        language: ISO-639-1 hint passed to the model.
        api_key: Provider key; falls back to the provider's env variable.
        timeout: Per-attempt timeout in seconds.
    """

    def __init__(
        self,
        model: str = "whisper-1",
        language: Optional[str] = "en",
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.model = model
        self.language = language
        self.api_key = api_key
        self.timeout = timeout

    async def transcribe(self, audio: bytes) -> str:
        """Return the transcribed text.

        Raises:
            TranscriptionError: If every supported format is rejected.
        """
        for fmt in candidate_formats(audio):
            buffer = io.BytesIO(audio)
            buffer.name = f"speech.{fmt}"

            try:
                logger.debug(f"Attempting transcription with .{fmt} format...")
                response = await litellm.atranscription(
                    model=self.model,
                    file=buffer,
                    language=self.language,
                    api_key=self.api_key,
                    timeout=self.timeout,
                )
            except Exception as e:
                logger.warning(f"Transcription failed with .{fmt}: {e}")
                continue

            text = ""
            if hasattr(response, "text"):
                text = response.text or ""
            elif isinstance(response, dict):
                text = response.get("text", "")

            logger.debug(f"Transcription successful with format: {fmt}")
            return text.strip()

        raise TranscriptionError("All audio formats failed. Audio data may be corrupted.")
