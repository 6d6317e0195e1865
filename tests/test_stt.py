from datetime import timedelta

import httpx
import pytest

from omniopenai.client import Client, MissingAPIKeyError, TranscriptionResponse
from omniopenai.client import Segment as ApiSegment
from omniopenai.client import WordTimestamp
from omniopenai.stt import (
    STTProvider,
    TranscriptionConfig,
    URLTranscriptionNotSupportedError,
    convert_transcription_result,
    filename_for_encoding,
)


def make_provider(handler):
    transport = httpx.MockTransport(handler)
    client = Client(api_key="placeholder", http_client=httpx.Client(transport=transport))
    return STTProvider(client)


def recording(payload):
    seen = []

    def handler(request):
        request.read()
        seen.append(request)
        return httpx.Response(200, json=payload)

    return handler, seen


TEST_AUDIO_CONFIG = TranscriptionConfig(encoding="mp3", sample_rate=16000, channels=1)


def test_name():
    provider = STTProvider.from_api_key("placeholder")
    assert provider.name() == "openai"


def test_from_env_requires_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(MissingAPIKeyError):
        STTProvider.from_env()


def test_transcribe_url_not_supported():
    provider = STTProvider.from_api_key("placeholder")
    with pytest.raises(URLTranscriptionNotSupportedError, match="URL transcription not supported"):
        provider.transcribe_url("https://example.com/a.mp3", TEST_AUDIO_CONFIG)


@pytest.mark.parametrize(
    "encoding, expected",
    [
        ("mp3", "audio.mp3"),
        ("wav", "audio.wav"),
        ("flac", "audio.flac"),
        ("opus", "audio.opus"),
        ("m4a", "audio.m4a"),
        ("webm", "audio.webm"),
        ("", "audio.mp3"),
        ("pcm", "audio.mp3"),
    ],
)
def test_filename_for_encoding(encoding, expected):
    assert filename_for_encoding(encoding) == expected


def test_transcribe_uses_encoding_filename():
    handler, seen = recording({"text": "hello"})
    provider = make_provider(handler)
    result = provider.transcribe(b"abc", TranscriptionConfig(encoding="wav", language="en"))
    assert result.text == "hello"
    assert result.segments == []
    body = seen[0].content
    assert b'filename="audio.wav"' in body
    assert b'name="language"\r\n\r\nen' in body
    assert b'name="response_format"' not in body


def test_transcribe_word_timestamps_requests_verbose():
    payload = {
        "text": "hi there",
        "language": "english",
        "duration": 1.0,
        "words": [{"word": "hi", "start": 0.0, "end": 0.4}],
        "segments": [{"id": 0, "start": 0.0, "end": 1.0, "text": "hi there"}],
    }
    handler, seen = recording(payload)
    provider = make_provider(handler)
    result = provider.transcribe(
        b"abc", TranscriptionConfig(enable_word_timestamps=True, model="whisper-1")
    )
    assert [w.text for w in result.segments[0].words] == ["hi"]
    body = seen[0].content
    assert b'name="response_format"\r\n\r\nverbose_json' in body
    assert b'name="model"\r\n\r\nwhisper-1' in body


def test_transcribe_file(tmp_path):
    path = tmp_path / "speech.flac"
    path.write_bytes(b"fLaC")
    handler, seen = recording({"text": "file text"})
    provider = make_provider(handler)
    result = provider.transcribe_file(path, TEST_AUDIO_CONFIG)
    assert result.text == "file text"
    assert b'filename="speech.flac"' in seen[0].content


def test_convert_groups_words_into_segments():
    response = TranscriptionResponse(
        text="hello world again",
        language="english",
        duration=4.0,
        words=[
            WordTimestamp("early", 0.5, 0.9),
            WordTimestamp("hello", 1.0, 1.5),
            WordTimestamp("world", 1.5, 2.0),
            WordTimestamp("again", 2.5, 3.0),
            WordTimestamp("late", 5.0, 5.5),
        ],
        segments=[
            ApiSegment(start=1.0, end=2.0, text="hello world", no_speech_prob=0.25),
            ApiSegment(start=2.0, end=4.0, text="again", no_speech_prob=0.0),
        ],
    )
    result = convert_transcription_result(response)
    assert result.duration == timedelta(seconds=4.0)
    assert result.language == "english"
    assert [w.text for w in result.segments[0].words] == ["hello", "world"]
    assert [w.text for w in result.segments[1].words] == ["again"]
    assert result.segments[0].confidence == pytest.approx(0.75)
    assert result.segments[1].start_time == timedelta(seconds=2.0)
    assert all(w.confidence == 1.0 for s in result.segments for w in s.words)


def test_convert_words_without_segments_are_dropped():
    response = TranscriptionResponse(text="x", words=[WordTimestamp("x", 0.0, 1.0)])
    result = convert_transcription_result(response)
    assert result.segments == []
    assert result.text == "x"