# omniopenai

Synchronous Python clients for OpenAI's audio and chat completion HTTP APIs,
built on `httpx`. The package has four modules:

- `omniopenai.client`: a low-level client for Whisper transcription and speech synthesis
- `omniopenai.stt`: a speech-to-text provider with results grouped into segments and words
- `omniopenai.tts`: a text-to-speech provider with a fixed voice catalogue and chunked streaming
- `omniopenai.llm`: a chat completion provider with tools, JSON mode and streaming

## Installation

```
pip install omniopenai
```

## Audio client

`Client` sends requests to the `/audio/transcriptions` and `/audio/speech` endpoints.

```python
from omniopenai.client import Client, TranscriptionRequest, TTSRequest

client = Client(api_key="placeholder")   # or Client.from_env() with OPENAI_API_KEY set

result = client.transcribe_file("meeting.mp3", TranscriptionRequest(language="en"))
print(result.text)

speech = client.synthesize(TTSRequest(input="Hello there", voice="nova"))
with open("hello.mp3", "wb") as fh:
    fh.write(speech.audio)

client.close()
```

`Client` also accepts `base_url` (default `https://api.openai.com/v1`) and an
existing `httpx.Client` as `http_client`. If you pass your own HTTP client,
`close()` leaves it open. `Client` can be used as a context manager.

Defaults:

- The transcription model is `whisper-1`, and the upload filename is `audio.mp3`.
- The speech model is `tts-1`, the voice is `alloy` and the format is `mp3`.
- A `temperature` or `speed` of zero is not sent.

If you set `timestamp_granularities` or set `response_format="verbose_json"`,
the request asks for verbose JSON. The `TranscriptionResponse` then also carries:

- `language`
- `duration`
- `words` (as `WordTimestamp`)
- `segments` (as `Segment`)

`synthesize_stream` returns a stream object. You can iterate it for bytes, call
`iter_bytes(chunk_size)` or `read()` on it, and use it as a context manager.

Errors:

- `Client.from_env()` raises `MissingAPIKeyError` when `OPENAI_API_KEY` is unset or empty.
- Transport failures, HTTP error statuses and unreadable responses raise
  `OpenAIError`. Its `status_code` holds the HTTP status where there is one.

## Speech-to-text provider

```python
from omniopenai.stt import STTProvider, TranscriptionConfig

stt = STTProvider.from_env()
result = stt.transcribe(audio_bytes, TranscriptionConfig(encoding="wav", enable_word_timestamps=True))
for segment in result.segments:
    print(segment.start_time, segment.end_time, segment.text)
    for word in segment.words:
        print("  ", word.text, word.start_time)
```

You can build an `STTProvider` from a `Client`, with `from_api_key(...)`, or
with `from_env()`.

How requests are made:

- `encoding` picks the upload filename extension. It accepts `mp3`, `wav`,
  `flac`, `opus`, `m4a` and `webm`; any other value gives `mp3`.
- `enable_word_timestamps` requests both word and segment timestamps.

What the result holds:

- Times are `datetime.timedelta` values.
- A segment's confidence is `1 - no_speech_prob`.
- Each word is placed in the segment whose time range holds its start time.

`transcribe_url` always raises `URLTranscriptionNotSupportedError`.

## Text-to-speech provider

```python
from omniopenai.tts import TTSProvider, SynthesisConfig, VOICE_CORAL

tts = TTSProvider.from_api_key("placeholder")
print([voice.id for voice in tts.list_voices()])

for chunk in tts.synthesize_stream("Streaming speech", SynthesisConfig(voice_id=VOICE_CORAL)):
    if chunk.error:
        raise chunk.error
    if chunk.is_final:
        break
    sink.write(chunk.audio)
```

The voice catalogue is built in: alloy, ash, ballad, coral, echo, fable, onyx,
nova, sage, shimmer, verse, marin and cedar. `get_voice` raises
`VoiceNotFoundError` for an unknown id.

`synthesize_stream` yields audio in chunks of up to 4096 bytes and ends with
a chunk whose `is_final` is true. If reading fails partway, it instead ends
with a chunk whose `error` is set.

## Chat completions

```python
from omniopenai.llm import Config, Provider, ChatCompletionRequest, Message, Role

provider = Provider(Config(api_key="placeholder"))
response = provider.create_chat_completion(
    ChatCompletionRequest(model="gpt-4o-mini", messages=[Message(role=Role.USER, content="Hello!")])
)
print(response.choices[0].message.content)

with provider.create_chat_completion_stream(
    ChatCompletionRequest(model="gpt-4o-mini", messages=[Message(role=Role.USER, content="Tell me a story")])
) as stream:
    for chunk in stream:
        print(chunk.choices[0].delta.content, end="")
```

`Config` takes these settings:

- `api_key` is required; if it is empty, `InvalidAPIKeyError` is raised.
- `base_url` is optional, for proxies or compatible endpoints.
- `organization` is optional and is sent as the `OpenAI-Organization` header.

`Provider.from_provider_config(api_key, base_url)` builds a provider from just
those two settings.

Request fields:

- `ChatCompletionRequest` supports `max_tokens`, `temperature`, `top_p`, `stop`,
  presence and frequency penalties, `user`, `seed`, `n`, `logprobs` and `top_logprobs`.
- `response_format=ResponseFormat("json_object")` turns on JSON mode.
- `tools` takes a list of `Tool` values.
- `tool_choice` accepts `"auto"`, `"none"`, `"required"` or
  `{"function": {"name": ...}}`. Anything else becomes `"auto"`.

`build_params` returns the JSON body that would be sent, without sending it.

API failures are raised as `APIError`. They carry:

- `status_code`
- `error_type`
- `message`

A streamed chunk carries `usage` only when the server reports a non-zero total.

## What this package does not do

- It has no command-line tool.
- It has no async interface.
- It does not retry requests.
- It has no registry that finds providers by name. Providers are built
  directly through their constructors or class methods.

## Running the tests

```
pip install -e .[test]
pytest
```