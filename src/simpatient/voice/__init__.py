"""SimPatient voice module: provider-agnostic STT and TTS."""

from simpatient.voice.speech import (
    ElevenLabsSynthesizer,
    LiteLLMSynthesizer,
    build_synthesizer,
)
from simpatient.voice.transcription import Transcriber

__all__ = [
    "ElevenLabsSynthesizer",
    "LiteLLMSynthesizer",
    "Transcriber",
    "build_synthesizer",
]
