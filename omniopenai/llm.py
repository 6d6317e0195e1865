"""Chat completion provider for the OpenAI chat API.

Usage::

    provider = Provider(Config(api_key="placeholder"))
    response = provider.create_chat_completion(
        ChatCompletionRequest(
            model="gpt-4",
            messages=[Message(role=Role.USER, content="Hello!")],
        )
    )

    with provider.create_chat_completion_stream(request) as stream:
        for chunk in stream:
            print(chunk.choices[0].delta.content, end="")
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

import httpx

from omniopenai.client import DEFAULT_BASE_URL, OpenAIError

_PROVIDER_NAME = "openai"
_CHAT_PATH = "/chat/completions"
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class APIError(OpenAIError):
    """Raised when the chat API reports an error or cannot be reached."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str = "",
        provider: str = _PROVIDER_NAME,
    ) -> None:
        super().__init__(f"{provider}: {message}", status_code)
        self.message = message
        self.error_type = error_type
        self.provider = provider


class InvalidAPIKeyError(ValueError):
    """Raised when a provider is configured without an API key."""

    def __init__(self, message: str = "invalid or missing API key") -> None:
        super().__init__(message)


class Role(str, Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def _role(value: str) -> Role | str:
    try:
        return Role(value)
    except ValueError:
        return value


@dataclass
class ToolFunction:
    """The function a tool call invokes and its JSON-encoded arguments."""

    name: str = ""
    arguments: str = ""


@dataclass
class ToolCall:
    """A tool call made by the assistant."""

    id: str = ""
    type: str = "function"
    function: ToolFunction = field(default_factory=ToolFunction)


@dataclass
class FunctionDefinition:
    """A function the model may call; parameters is a JSON Schema object."""

    name: str
    description: str = ""
    parameters: Any = None


@dataclass
class Tool:
    """A tool offered to the model."""

    function: FunctionDefinition
    type: str = "function"


@dataclass
class ResponseFormat:
    """Requested response format, e.g. "json_object"."""

    type: str


@dataclass
class Message:
    """A chat message."""

    role: Role | str
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None


@dataclass
class ChatCompletionRequest:
    """Options for a chat completion."""

    model: str
    messages: list[Message] = field(default_factory=list)
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    stop: list[str] = field(default_factory=list)
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    user: str | None = None
    seed: int | None = None
    n: int | None = None
    logprobs: bool | None = None
    top_logprobs: int | None = None
    response_format: ResponseFormat | None = None
    tools: list[Tool] = field(default_factory=list)
    tool_choice: Any = None


@dataclass
class Usage:
    """Token counts of a completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatCompletionChoice:
    """One choice of a completion: a message, or a delta when streaming."""

    index: int = 0
    message: Message | None = None
    delta: Message | None = None
    finish_reason: str | None = None


@dataclass
class ChatCompletionResponse:
    """A finished chat completion."""

    id: str
    object: str
    created: int
    model: str
    choices: list[ChatCompletionChoice] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    system_fingerprint: str | None = None


@dataclass
class ChatCompletionChunk:
    """One piece of a streamed chat completion."""

    id: str
    object: str
    created: int
    model: str
    choices: list[ChatCompletionChoice] = field(default_factory=list)
    usage: Usage | None = None
    system_fingerprint: str | None = None


@dataclass(frozen=True)
class Capabilities:
    """Features the provider supports."""

    tools: bool = False
    streaming: bool = False
    vision: bool = False
    json: bool = False
    system_role: bool = False
    max_context_window: int = 0
    supports_max_tokens: bool = False


@dataclass
class Config:
    """Provider settings; base_url may point at a proxy or compatible endpoint."""

    api_key: str
    base_url: str = ""
    organization: str = ""


def _api_error(response: httpx.Response) -> APIError:
    message = response.text.strip() or response.reason_phrase
    error_type = ""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        message = str(error.get("message") or message)
        error_type = str(error.get("type") or "")
    return APIError(message, status_code=response.status_code, error_type=error_type)


def _tool_calls_from_json(items: Any) -> list[ToolCall]:
    calls = []
    for item in items or []:
        function = item.get("function") or {}
        calls.append(
            ToolCall(
                id=str(item.get("id") or ""),
                type=str(item.get("type") or ""),
                function=ToolFunction(
                    name=str(function.get("name") or ""),
                    arguments=str(function.get("arguments") or ""),
                ),
            )
        )
    return calls


def _usage_from_json(data: Any) -> Usage:
    data = data or {}
    return Usage(
        prompt_tokens=int(data.get("prompt_tokens") or 0),
        completion_tokens=int(data.get("completion_tokens") or 0),
        total_tokens=int(data.get("total_tokens") or 0),
    )


def _convert_response(body: dict[str, Any]) -> ChatCompletionResponse:
    result = ChatCompletionResponse(
        id=str(body.get("id") or ""),
        object=str(body.get("object") or ""),
        created=int(body.get("created") or 0),
        model=str(body.get("model") or ""),
        usage=_usage_from_json(body.get("usage")),
        system_fingerprint=body.get("system_fingerprint") or None,
    )
    for choice in body.get("choices") or []:
        message = choice.get("message") or {}
        result.choices.append(
            ChatCompletionChoice(
                index=int(choice.get("index") or 0),
                message=Message(
                    role=_role(str(message.get("role") or "")),
                    content=str(message.get("content") or ""),
                    tool_calls=_tool_calls_from_json(message.get("tool_calls")),
                ),
                finish_reason=choice.get("finish_reason") or None,
            )
        )
    return result


def _convert_chunk(body: dict[str, Any]) -> ChatCompletionChunk:
    result = ChatCompletionChunk(
        id=str(body.get("id") or ""),
        object=str(body.get("object") or ""),
        created=int(body.get("created") or 0),
        model=str(body.get("model") or ""),
        system_fingerprint=body.get("system_fingerprint") or None,
    )
    for choice in body.get("choices") or []:
        delta = choice.get("delta") or {}
        result.choices.append(
            ChatCompletionChoice(
                index=int(choice.get("index") or 0),
                delta=Message(
                    role=_role(str(delta.get("role") or "")),
                    content=str(delta.get("content") or ""),
                    tool_calls=_tool_calls_from_json(delta.get("tool_calls")),
                ),
                finish_reason=choice.get("finish_reason") or None,
            )
        )
    usage = _usage_from_json(body.get("usage"))
    if usage.total_tokens > 0:
        result.usage = usage
    return result


class ChatCompletionStream:
    """Iterator over the chunks of a streamed completion; close it when done."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._events = self._iter_events()
        self._finished = False

    def _iter_lines(self) -> Iterator[str]:
        buffer = ""
        for text in self._response.iter_text():
            buffer += text
            *complete, buffer = _LINE_BREAK.split(buffer)
            yield from complete
        if buffer:
            yield buffer

    def _iter_events(self) -> Iterator[str]:
        data_lines: list[str] = []
        for line in self._iter_lines():
            if not line:
                if data_lines:
                    yield "\n".join(data_lines)
                    data_lines = []
                continue
            if line.startswith(":"):
                continue
            name, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if name == "data":
                data_lines.append(value)
        if data_lines:
            yield "\n".join(data_lines)

    def __iter__(self) -> "ChatCompletionStream":
        return self

    def __next__(self) -> ChatCompletionChunk:
        if self._finished:
            raise StopIteration
        try:
            data = next(self._events)
        except StopIteration:
            self._finish()
            raise
        except httpx.HTTPError as exc:
            self._finish()
            raise APIError(str(exc)) from exc
        if data.startswith("[DONE]"):
            self._finish()
            raise StopIteration
        try:
            payload = json.loads(data)
        except ValueError as exc:
            self._finish()
            raise APIError(f"invalid stream event: {exc}") from exc
        if not isinstance(payload, dict):
            self._finish()
            raise APIError("invalid stream event: expected a JSON object")
        error = payload.get("error")
        if error:
            self._finish()
            if isinstance(error, dict):
                raise APIError(
                    str(error.get("message") or error),
                    error_type=str(error.get("type") or ""),
                )
            raise APIError(str(error))
        return _convert_chunk(payload)

    def _finish(self) -> None:
        self._finished = True
        self._response.close()

    def close(self) -> None:
        """Stop the stream and release the connection."""
        self._finish()

    def __enter__(self) -> "ChatCompletionStream":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class Provider:
    """Chat completion provider."""

    def __init__(self, config: Config, http_client: httpx.Client | None = None) -> None:
        if not config.api_key:
            raise InvalidAPIKeyError()
        self.config = config
        self.base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        self._owns_http = http_client is None
        self._http = http_client if http_client is not None else httpx.Client(timeout=600.0)

    @classmethod
    def from_provider_config(cls, api_key: str, base_url: str = "") -> "Provider":
        """Build a provider from generic provider settings."""
        return cls(Config(api_key=api_key, base_url=base_url))

    def name(self) -> str:
        return _PROVIDER_NAME

    def capabilities(self) -> Capabilities:
        return Capabilities(
            tools=True,
            streaming=True,
            vision=True,
            json=True,
            system_role=True,
            max_context_window=128000,
            supports_max_tokens=True,
        )

    def close(self) -> None:
        """Release the HTTP client if this provider created it."""
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "Provider":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.config.api_key}"}
        if self.config.organization:
            headers["OpenAI-Organization"] = self.config.organization
        return headers

    def build_params(self, request: ChatCompletionRequest) -> dict[str, Any]:
        """Return the JSON body for a chat completion request."""
        params: dict[str, Any] = {
            "model": request.model,
            "messages": [
                converted
                for converted in map(self._convert_message, request.messages)
                if converted is not None
            ],
        }
        optional = {
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "top_p": request.top_p,
            "presence_penalty": request.presence_penalty,
            "frequency_penalty": request.frequency_penalty,
            "user": request.user,
            "seed": request.seed,
            "n": request.n,
        }
        params.update({key: value for key, value in optional.items() if value is not None})
        if request.stop:
            params["stop"] = list(request.stop)
        if request.logprobs:
            params["logprobs"] = True
            if request.top_logprobs is not None:
                params["top_logprobs"] = request.top_logprobs
        if request.response_format is not None and request.response_format.type == "json_object":
            params["response_format"] = {"type": "json_object"}
        if request.tools:
            params["tools"] = [self._convert_tool(tool) for tool in request.tools]
        if request.tool_choice is not None:
            params["tool_choice"] = self._convert_tool_choice(request.tool_choice)
        return params

    @staticmethod
    def _convert_message(message: Message) -> dict[str, Any] | None:
        if message.role in (Role.SYSTEM, Role.USER):
            return {"role": Role(message.role).value, "content": message.content}
        if message.role == Role.ASSISTANT:
            converted: dict[str, Any] = {"role": "assistant", "content": message.content}
            if message.tool_calls:
                converted["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.function.name,
                            "arguments": call.function.arguments,
                        },
                    }
                    for call in message.tool_calls
                ]
            return converted
        if message.role == Role.TOOL:
            return {
                "role": "tool",
                "content": message.content,
                "tool_call_id": message.tool_call_id or "",
            }
        return None

    @staticmethod
    def _convert_tool(tool: Tool) -> dict[str, Any]:
        function: dict[str, Any] = {
            "name": tool.function.name,
            "description": tool.function.description,
        }
        if isinstance(tool.function.parameters, dict):
            function["parameters"] = tool.function.parameters
        return {"type": "function", "function": function}

    @staticmethod
    def _convert_tool_choice(choice: Any) -> Any:
        if isinstance(choice, str) and choice in ("auto", "none", "required"):
            return choice
        if isinstance(choice, dict):
            function = choice.get("function")
            if isinstance(function, dict) and isinstance(function.get("name"), str):
                return {"type": "function", "function": {"name": function["name"]}}
        return "auto"

    def create_chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """Send a chat completion request and return the response."""
        try:
            response = self._http.post(
                f"{self.base_url}{_CHAT_PATH}",
                headers=self._headers(),
                json=self.build_params(request),
            )
        except httpx.HTTPError as exc:
            raise APIError(str(exc)) from exc
        if response.is_error:
            raise _api_error(response)
        try:
            body = response.json()
        except ValueError as exc:
            raise APIError(f"invalid response: {exc}") from exc
        if not isinstance(body, dict):
            raise APIError("invalid response: expected a JSON object")
        return _convert_response(body)

    def create_chat_completion_stream(self, request: ChatCompletionRequest) -> ChatCompletionStream:
        """Start a streamed chat completion."""
        payload = self.build_params(request)
        payload["stream"] = True
        http_request = self._http.build_request(
            "POST", f"{self.base_url}{_CHAT_PATH}", headers=self._headers(), json=payload
        )
        try:
            response = self._http.send(http_request, stream=True)
        except httpx.HTTPError as exc:
            raise APIError(str(exc)) from exc
        if response.is_error:
            try:
                response.read()
                error = _api_error(response)
            finally:
                response.close()
            raise error
        return ChatCompletionStream(response)