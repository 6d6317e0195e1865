"""Speech-to-text provider backed by Whisper."""

from __future__ import annotations

import os
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta

from omniopenai import client as oai

_PROVIDER_NAME = "openai"

_FILENAMES = {
    "mp3": "audio.mp3",
    "wav": "audio.wav",
    "flac": "audio.flac",
    "opus": "audio.opus",
    "m4a": "audio.m4a",
    "webm": "audio.webm",
}

_WORD_GRANULARITIES = ["word", "segment"]


class URLTranscriptionNotSupportedError(oai.OpenAIError):
    """Raised because the API cannot transcribe audio from a URL."""

    def __init__(self, url: str = "") -> None:
        super().__init__("openai: URL transcription not supported")
        self.url = url


@dataclass
class TranscriptionConfig:
    """Options for a transcription."""

    language: str = ""
    model: str = ""
    encoding: str = ""
    sample_rate: int = 0
    channels: int = 0
    enable_word_timestamps: bool = False


@dataclass
class Word:
    """A word with its timing."""

    text: str
    start_time: timedelta
    end_time: timedelta
    confidence: float = 1.0


@dataclass
class Segment:
    """A stretch of transcribed speech and the words in it."""

    text: str
    start_time: timedelta
    end_time: timedelta
    confidence: float
    words: list[Word] = field(default_factory=list)


@dataclass
class TranscriptionResult:
    """The result of a transcription."""

    text: str
    language: str = ""
    duration: timedelta = timedelta(0)
    segments: list[Segment] = field(default_factory=list)


def _seconds(value: float) -> timedelta:
    return timedelta(seconds=value)


def convert_transcription_result(response: oai.TranscriptionResponse) -> TranscriptionResult:
    """Turn an API transcription into a result with words grouped by segment."""
    result = TranscriptionResult(
        text=response.text,
        language=response.language,
        duration=_seconds(response.duration),
        segments=[
            Segment(
                text=seg.text,
                start_time=_seconds(seg.start),
                end_time=_seconds(seg.end),
                confidence=1.0 - seg.no_speech_prob,
            )
            for seg in response.segments
        ],
    )

    if response.words and result.segments:
        pending = deque(response.words)
        for segment in result.segments:
            while pending:
                word = pending[0]
                start = _seconds(word.start)
                if segment.start_time <= start < segment.end_time:
                    segment.words.append(
                        Word(text=word.word, start_time=start, end_time=_seconds(word.end))
                    )
                    pending.popleft()
                elif start >= segment.end_time:
                    break
                else:
                    pending.popleft()

    return result


def filename_for_encoding(encoding: str) -> str:
    """Return an upload filename whose extension matches the encoding."""
    return _FILENAMES.get(encoding, "audio.mp3")


class STTProvider:
    """Speech-to-text provider using Whisper."""

    def __init__(self, client: oai.Client) -> None:
        self.client = client

    @classmethod
    def from_api_key(cls, api_key: str) -> "STTProvider":
        return cls(oai.Client(api_key))

    @classmethod
    def from_env(cls) -> "STTProvider":
        return cls(oai.Client.from_env())

    def name(self) -> str:
        return _PROVIDER_NAME

    @staticmethod
    def _request(config: TranscriptionConfig, **fields: object) -> oai.TranscriptionRequest:
        request = oai.TranscriptionRequest(language=config.language, **fields)
        if config.model:
            request.model = config.model
        if config.enable_word_timestamps:
            request.timestamp_granularities = list(_WORD_GRANULARITIES)
        return request

    def transcribe(
        self, audio: bytes, config: TranscriptionConfig | None = None
    ) -> TranscriptionResult:
        """Transcribe audio bytes."""
        config = config or TranscriptionConfig()
        request = self._request(
            config, audio=audio, filename=filename_for_encoding(config.encoding)
        )
        return convert_transcription_result(self.client.transcribe(request))

    def transcribe_file(
        self, file_path: str | os.PathLike[str], config: TranscriptionConfig | None = None
    ) -> TranscriptionResult:
        """Transcribe the audio stored at a file path."""
        config = config or TranscriptionConfig()
        request = self._request(config, filename=os.path.basename(os.fspath(file_path)))
        return convert_transcription_result(self.client.transcribe_file(file_path, request))

    def transcribe_url(
        self, url: str, config: TranscriptionConfig | None = None
    ) -> TranscriptionResult:
        """Reject the request: the API does not fetch audio from URLs."""
        error = URLTranscriptionNotSupportedError(url)
        raise error