"""Text-to-speech provider backed by the speech endpoint."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import httpx

from omniopenai import client as oai

VOICE_ALLOY = oai.VOICE_ALLOY
VOICE_ASH = oai.VOICE_ASH
VOICE_BALLAD = oai.VOICE_BALLAD
VOICE_CORAL = oai.VOICE_CORAL
VOICE_ECHO = oai.VOICE_ECHO
VOICE_FABLE = oai.VOICE_FABLE
VOICE_ONYX = oai.VOICE_ONYX
VOICE_NOVA = oai.VOICE_NOVA
VOICE_SAGE = oai.VOICE_SAGE
VOICE_SHIMMER = oai.VOICE_SHIMMER
VOICE_VERSE = oai.VOICE_VERSE
VOICE_MARIN = oai.VOICE_MARIN
VOICE_CEDAR = oai.VOICE_CEDAR

MODEL_TTS_1 = oai.MODEL_TTS_1
MODEL_TTS_1_HD = oai.MODEL_TTS_1_HD

_PROVIDER_NAME = "openai"
_CHUNK_SIZE = 4096


class VoiceNotFoundError(LookupError):
    """Raised when a voice id is unknown."""


@dataclass(frozen=True)
class Voice:
    """A voice offered by the provider."""

    id: str
    name: str
    language: str
    gender: str
    provider: str = _PROVIDER_NAME


_VOICES: tuple[Voice, ...] = (
    Voice("alloy", "Alloy", "en", "neutral"),
    Voice("ash", "Ash", "en", "male"),
    Voice("ballad", "Ballad", "en", "male"),
    Voice("coral", "Coral", "en", "female"),
    Voice("echo", "Echo", "en", "male"),
    Voice("fable", "Fable", "en", "neutral"),
    Voice("onyx", "Onyx", "en", "male"),
    Voice("nova", "Nova", "en", "female"),
    Voice("sage", "Sage", "en", "female"),
    Voice("shimmer", "Shimmer", "en", "female"),
    Voice("verse", "Verse", "en", "male"),
    Voice("marin", "Marin", "en", "female"),
    Voice("cedar", "Cedar", "en", "male"),
)


@dataclass
class SynthesisConfig:
    """Options for speech synthesis; empty values use the client defaults."""

    voice_id: str = ""
    model: str = ""
    output_format: str = ""
    speed: float = 0.0


@dataclass
class SynthesisResult:
    """Synthesized audio."""

    audio: bytes
    format: str


@dataclass
class StreamChunk:
    """A piece of streamed audio, the final marker, or an error."""

    audio: bytes = b""
    is_final: bool = False
    error: BaseException | None = None


def _stream_chunks(stream) -> Iterator[StreamChunk]:
    with stream:
        try:
            for data in stream.iter_bytes(_CHUNK_SIZE):
                if data:
                    yield StreamChunk(audio=bytes(data))
        except (httpx.HTTPError, OSError) as exc:
            yield StreamChunk(error=exc)
            return
        yield StreamChunk(is_final=True)


class TTSProvider:
    """Text-to-speech provider."""

    def __init__(self, client: oai.Client) -> None:
        self.client = client

    @classmethod
    def from_api_key(cls, api_key: str) -> "TTSProvider":
        return cls(oai.Client(api_key))

    @classmethod
    def from_env(cls) -> "TTSProvider":
        return cls(oai.Client.from_env())

    def name(self) -> str:
        return _PROVIDER_NAME

    def list_voices(self) -> list[Voice]:
        """Return the available voices."""
        return list(_VOICES)

    def get_voice(self, voice_id: str) -> Voice:
        """Return the voice with the given id."""
        for voice in _VOICES:
            if voice.id == voice_id:
                return voice
        raise VoiceNotFoundError(f"voice not found: {voice_id}")

    @staticmethod
    def _request(text: str, config: SynthesisConfig | None) -> oai.TTSRequest:
        config = config or SynthesisConfig()
        return oai.TTSRequest(
            input=text,
            model=config.model,
            voice=config.voice_id,
            response_format=config.output_format,
            speed=config.speed if config.speed > 0 else 0.0,
        )

    def synthesize(self, text: str, config: SynthesisConfig | None = None) -> SynthesisResult:
        """Convert text to speech."""
        response = self.client.synthesize(self._request(text, config))
        return SynthesisResult(audio=response.audio, format=response.format)

    def synthesize_stream(
        self, text: str, config: SynthesisConfig | None = None
    ) -> Iterator[StreamChunk]:
        """Convert text to speech, yielding audio chunks and then a final marker."""
        stream = self.client.synthesize_stream(self._request(text, config))
        return _stream_chunks(stream)