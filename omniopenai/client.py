"""Client for the OpenAI audio endpoints: Whisper transcription and text-to-speech."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterator

import httpx

DEFAULT_BASE_URL = "https://api.openai.com/v1"

VOICE_ALLOY = "alloy"
VOICE_ASH = "ash"
VOICE_BALLAD = "ballad"
VOICE_CORAL = "coral"
VOICE_ECHO = "echo"
VOICE_FABLE = "fable"
VOICE_ONYX = "onyx"
VOICE_NOVA = "nova"
VOICE_SAGE = "sage"
VOICE_SHIMMER = "shimmer"
VOICE_VERSE = "verse"
VOICE_MARIN = "marin"
VOICE_CEDAR = "cedar"

MODEL_WHISPER_1 = "whisper-1"
MODEL_TTS_1 = "tts-1"
MODEL_TTS_1_HD = "tts-1-hd"

_DEFAULT_AUDIO_FILENAME = "audio.mp3"
_DEFAULT_TTS_FORMAT = "mp3"


class OpenAIError(Exception):
    """Raised when a request to the API fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MissingAPIKeyError(OpenAIError):
    """Raised when no API key is available in the environment."""


@dataclass
class TranscriptionRequest:
    """Options for a Whisper transcription."""

    audio: bytes = b""
    filename: str = ""
    model: str = ""
    language: str = ""
    prompt: str = ""
    response_format: str = ""
    temperature: float = 0.0
    timestamp_granularities: list[str] = field(default_factory=list)


@dataclass
class WordTimestamp:
    """A transcribed word with its timing in seconds."""

    word: str
    start: float
    end: float


@dataclass
class Segment:
    """A transcription segment as reported by the API."""

    id: int = 0
    seek: int = 0
    start: float = 0.0
    end: float = 0.0
    text: str = ""
    temperature: float = 0.0
    avg_logprob: float = 0.0
    compression_ratio: float = 0.0
    no_speech_prob: float = 0.0


@dataclass
class TranscriptionResponse:
    """The result of a transcription."""

    text: str
    language: str = ""
    duration: float = 0.0
    words: list[WordTimestamp] = field(default_factory=list)
    segments: list[Segment] = field(default_factory=list)


@dataclass
class TTSRequest:
    """Options for a text-to-speech request."""

    input: str = ""
    model: str = ""
    voice: str = ""
    response_format: str = ""
    speed: float = 0.0


@dataclass
class TTSResponse:
    """Audio produced by text-to-speech."""

    audio: bytes
    format: str


def _word_from_json(data: dict[str, Any]) -> WordTimestamp:
    return WordTimestamp(
        word=str(data.get("word", "")),
        start=float(data.get("start") or 0.0),
        end=float(data.get("end") or 0.0),
    )


def _segment_from_json(data: dict[str, Any]) -> Segment:
    return Segment(
        id=int(data.get("id") or 0),
        seek=int(data.get("seek") or 0),
        start=float(data.get("start") or 0.0),
        end=float(data.get("end") or 0.0),
        text=str(data.get("text", "")),
        temperature=float(data.get("temperature") or 0.0),
        avg_logprob=float(data.get("avg_logprob") or 0.0),
        compression_ratio=float(data.get("compression_ratio") or 0.0),
        no_speech_prob=float(data.get("no_speech_prob") or 0.0),
    )


def _describe_error(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return f"{response.status_code}: {error['message']}"
    text = response.text.strip()
    return f"{response.status_code}: {text}" if text else str(response.status_code)


class _AudioStream:
    """Streaming audio body of a speech response; close it when done."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    def __iter__(self) -> Iterator[bytes]:
        return self.iter_bytes()

    def iter_bytes(self, chunk_size: int | None = None) -> Iterator[bytes]:
        yield from self._response.iter_bytes(chunk_size)

    def read(self) -> bytes:
        return self._response.read()

    def close(self) -> None:
        self._response.close()

    def __enter__(self) -> "_AudioStream":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class Client:
    """Client for the audio API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._owns_http = http_client is None
        self._http = http_client if http_client is not None else httpx.Client(timeout=600.0)

    @classmethod
    def from_env(cls) -> "Client":
        """Build a client from the OPENAI_API_KEY environment variable."""
        api_key = os.environ.get("OPENAI_API_KEY", "")
        if not api_key:
            raise MissingAPIKeyError("OPENAI_API_KEY environment variable not set")
        return cls(api_key)

    def close(self) -> None:
        """Release the HTTP client if this object created it."""
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _post(self, path: str, action: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._http.post(
                f"{self.base_url}{path}", headers=self._headers(), **kwargs
            )
        except httpx.HTTPError as exc:
            raise OpenAIError(f"{action} failed: {exc}") from exc
        if response.is_error:
            raise OpenAIError(
                f"{action} failed: {_describe_error(response)}",
                status_code=response.status_code,
            )
        return response

    def transcribe(self, request: TranscriptionRequest) -> TranscriptionResponse:
        """Transcribe audio to text."""
        model = request.model or MODEL_WHISPER_1
        filename = request.filename or _DEFAULT_AUDIO_FILENAME

        data: dict[str, Any] = {"model": model}
        if request.language:
            data["language"] = request.language
        if request.prompt:
            data["prompt"] = request.prompt
        if request.temperature > 0:
            data["temperature"] = str(request.temperature)

        want_verbose = (
            bool(request.timestamp_granularities)
            or request.response_format == "verbose_json"
        )
        if want_verbose:
            data["response_format"] = "verbose_json"
            if request.timestamp_granularities:
                data["timestamp_granularities[]"] = list(request.timestamp_granularities)

        files = {"file": (os.path.basename(filename), request.audio)}
        response = self._post(
            "/audio/transcriptions", "transcription", data=data, files=files
        )

        try:
            body = response.json()
        except ValueError as exc:
            kind = "verbose response" if want_verbose else "response"
            raise OpenAIError(f"failed to parse {kind}: {exc}") from exc
        if not isinstance(body, dict):
            raise OpenAIError("failed to parse response: expected a JSON object")

        if not want_verbose:
            return TranscriptionResponse(text=str(body.get("text", "")))

        return TranscriptionResponse(
            text=str(body.get("text", "")),
            language=str(body.get("language") or ""),
            duration=float(body.get("duration") or 0.0),
            words=[_word_from_json(w) for w in body.get("words") or []],
            segments=[_segment_from_json(s) for s in body.get("segments") or []],
        )

    def transcribe_file(
        self, file_path: str | os.PathLike[str], request: TranscriptionRequest | None = None
    ) -> TranscriptionResponse:
        """Transcribe the audio stored at a file path."""
        path = os.fspath(file_path)
        try:
            audio = Path(path).read_bytes()
        except OSError as exc:
            raise OpenAIError(f"failed to read file: {exc}") from exc
        base = request if request is not None else TranscriptionRequest()
        return self.transcribe(
            replace(base, audio=audio, filename=base.filename or path)
        )

    @staticmethod
    def _speech_payload(request: TTSRequest) -> tuple[dict[str, Any], str]:
        response_format = request.response_format or _DEFAULT_TTS_FORMAT
        payload: dict[str, Any] = {
            "input": request.input,
            "model": request.model or MODEL_TTS_1,
            "voice": request.voice or VOICE_ALLOY,
            "response_format": response_format,
        }
        if request.speed > 0:
            payload["speed"] = request.speed
        return payload, response_format

    def synthesize(self, request: TTSRequest) -> TTSResponse:
        """Convert text to speech and return the whole audio."""
        payload, response_format = self._speech_payload(request)
        response = self._post("/audio/speech", "speech synthesis", json=payload)
        return TTSResponse(audio=response.content, format=response_format)

    def synthesize_stream(self, request: TTSRequest) -> _AudioStream:
        """Convert text to speech and return the audio as a stream."""
        payload, _ = self._speech_payload(request)
        http_request = self._http.build_request(
            "POST", f"{self.base_url}/audio/speech", headers=self._headers(), json=payload
        )
        try:
            response = self._http.send(http_request, stream=True)
        except httpx.HTTPError as exc:
            raise OpenAIError(f"speech synthesis failed: {exc}") from exc
        if response.is_error:
            try:
                response.read()
                message = _describe_error(response)
            finally:
                response.close()
            raise OpenAIError(
                f"speech synthesis failed: {message}", status_code=response.status_code
            )
        return _AudioStream(response)