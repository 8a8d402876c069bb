"""
Speech synthesis for patient replies.

Two backends, chosen by ``TTS_PROVIDER``:
- ElevenLabs text-to-speech over its REST API (default)
- any TTS model available through LiteLLM (OpenAI, Azure, Gemini, etc.)

Both return the encoded audio bytes (mp3) unchanged; the API layer
base64-encodes them for the client.
"""

from typing import Dict, Optional

import httpx
import litellm

from simpatient.errors import SynthesisError
from simpatient.logger import get_logger
from simpatient.session.models import VoiceGender

logger = get_logger(__name__)


class ElevenLabsSynthesizer:
    """ElevenLabs text-to-speech.

    Args:
        api_key: ElevenLabs API key (``xi-api-key`` header).
        voices: Voice id per gender.
        model: ElevenLabs model id.
        stability: Voice stability setting (0-1).
        similarity_boost: Voice similarity setting (0-1).
        base_url: API root, overridable for proxies and tests.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        api_key: str,
        voices: Dict[VoiceGender, str],
        model: str = "eleven_turbo_v2_5",
        stability: float = 0.5,
        similarity_boost: float = 0.75,
        base_url: str = "https://api.elevenlabs.io",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._voices = voices
        self._model = model
        self._voice_settings = {
            "stability": stability,
            "similarity_boost": similarity_boost,
        }
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )

    def voice_for(self, voice_gender: VoiceGender) -> str:
        return self._voices.get(voice_gender) or self._voices[VoiceGender.MALE]

    async def synthesize(self, text: str, voice_gender: VoiceGender) -> bytes:
        voice_id = self.voice_for(voice_gender)
        try:
            response = await self._client.post(
                f"/v1/text-to-speech/{voice_id}",
                headers={
                    "xi-api-key": self._api_key,
                    "Content-Type": "application/json",
                    "Accept": "audio/mpeg",
                },
                json={
                    "text": text,
                    "model_id": self._model,
                    "voice_settings": self._voice_settings,
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Error generating speech: HTTP {e.response.status_code} from ElevenLabs"
            )
            raise SynthesisError(
                f"Speech synthesis failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Error generating speech: {e}")
            raise SynthesisError(f"Speech synthesis failed: {e}") from e

        if not response.content:
            raise SynthesisError("Speech synthesis returned empty audio")
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()


class LiteLLMSynthesizer:
    """Text-to-speech through any LiteLLM speech model.

    Args:
        model: LiteLLM model string (e.g. "openai/tts-1").
        voices: Voice name per gender (e.g. {MALE: "onyx", FEMALE: "nova"}).
        api_key: Provider key; falls back to the provider's env variable.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        model: str,
        voices: Dict[VoiceGender, str],
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._model = model
        self._voices = voices
        self._api_key = api_key
        self._timeout = timeout

    async def synthesize(self, text: str, voice_gender: VoiceGender) -> bytes:
        voice = self._voices.get(voice_gender) or self._voices[VoiceGender.MALE]
        try:
            response = await litellm.aspeech(
                model=self._model,
                input=text,
                voice=voice,
                api_key=self._api_key,
                timeout=self._timeout,
            )
        except Exception as e:
            logger.error(f"TTS failed: {e}")
            raise SynthesisError(f"Speech synthesis failed: {e}") from e

        audio = self._extract_audio_bytes(response)
        if not audio:
            logger.error("TTS returned empty audio")
            raise SynthesisError("Speech synthesis returned empty audio")
        return audio

    async def aclose(self) -> None:
        return None

    @staticmethod
    def _extract_audio_bytes(response) -> Optional[bytes]:
        """Extract raw audio bytes from LiteLLM speech response."""
        if isinstance(response, (bytes, bytearray)):
            return bytes(response)
        if hasattr(response, "content"):
            return response.content
        if hasattr(response, "read"):
            return response.read()
        return None


def build_synthesizer(settings):
    """Create the synthesizer selected by ``settings.tts_provider``."""
    voices = {
        VoiceGender.MALE: settings.tts_voice_male,
        VoiceGender.FEMALE: settings.tts_voice_female,
    }
    if settings.tts_provider == "litellm":
        return LiteLLMSynthesizer(
            model=settings.tts_model,
            voices=voices,
            api_key=settings.openai_api_key,
            timeout=settings.upstream_timeout_seconds,
        )
    return ElevenLabsSynthesizer(
        api_key=settings.eleven_labs_api_key,
        voices=voices,
        model=settings.tts_model,
        stability=settings.tts_stability,
        similarity_boost=settings.tts_similarity_boost,
        base_url=settings.elevenlabs_base_url,
        timeout=settings.upstream_timeout_seconds,
    )
