from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Protocol, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_ollama import ChatOllama
from tenacity import AsyncRetrying, retry_if_not_exception_type, stop_after_attempt, wait_random_exponential

from ..core.config import Settings
from ..core.errors import CompletionError, DeadlineExceeded
from ..core.logging import get_logger

logger = get_logger(name=__name__)


@dataclass(slots=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CompletionResult:
    text: str
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    message: AIMessage | None = None


class Completer(Protocol):
    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
        json_mode: bool = False,
    ) -> CompletionResult: ...


def _build_base_url(host: str, port: int) -> str:
    if ":" in host.rsplit("/", maxsplit=1)[-1]:
        return host.rstrip("/")
    return f"{host.rstrip('/')}:{port}"


def user_message(text: str) -> HumanMessage:
    return HumanMessage(content=text)


def tool_result_message(call: ToolCallRequest, payload: Any) -> ToolMessage:
    content = payload if isinstance(payload, str) else json.dumps(payload, default=str)
    return ToolMessage(content=content, tool_call_id=call.id, name=call.name)


def assistant_tool_message(result: CompletionResult) -> AIMessage:
    """Assistant turn that requested the tools, replayed ahead of tool results."""
    if result.message is not None:
        return result.message
    return AIMessage(
        content=result.text,
        tool_calls=[{"name": call.name, "args": call.arguments, "id": call.id} for call in result.tool_calls],
    )


@dataclass
class CompletionService:
    """LangChain/Ollama chat completion with tool calling, retries and a per-call deadline."""

    settings: Settings
    _client: Any
    model: str
    _client_cache: ClassVar[dict[str, Any]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        model: str | None = None,
        client: Any | None = None,
    ) -> "CompletionService":
        model_name = model or settings.ollama.model
        if client is None:
            client = cls._cached_client(settings, model_name)
        return cls(settings=settings, _client=client, model=model_name)

    @classmethod
    def _cached_client(cls, settings: Settings, model_name: str) -> Any:
        cache_key = f"{settings.ollama.host}:{settings.ollama.port}:{model_name}"
        cached = cls._client_cache.get(cache_key)
        if cached is None:
            base_url = _build_base_url(settings.ollama.host, settings.ollama.port)
            cached = ChatOllama(model=model_name, base_url=base_url, temperature=settings.ollama.temperature)
            cls._client_cache[cache_key] = cached
        return cached

    def _runnable(
        self,
        *,
        tools: Sequence[Mapping[str, Any]] | None,
        temperature: float | None,
        max_tokens: int | None,
        model: str | None,
        json_mode: bool,
    ) -> Any:
        client = self._client
        if model and model != self.model and isinstance(client, ChatOllama):
            client = self._cached_client(self.settings, model)
        if tools:
            client = client.bind_tools(list(tools))
        options: dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        bind_kwargs: dict[str, Any] = {}
        if options:
            bind_kwargs["options"] = options
        if json_mode:
            bind_kwargs["format"] = "json"
        if bind_kwargs and hasattr(client, "bind"):
            client = client.bind(**bind_kwargs)
        return client

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
        json_mode: bool = False,
    ) -> CompletionResult:
        runnable = self._runnable(
            tools=tools,
            temperature=temperature,
            max_tokens=max_tokens,
            model=model,
            json_mode=json_mode,
        )
        conversation: list[BaseMessage] = [SystemMessage(content=system_prompt), *messages]
        execution = self.settings.execution
        timeout = execution.call_timeout_seconds

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(execution.retry_attempts),
                wait=wait_random_exponential(
                    multiplier=execution.retry_backoff_seconds,
                    max=execution.retry_max_backoff_seconds,
                ),
                retry=retry_if_not_exception_type(DeadlineExceeded),
                reraise=True,
            ):
                with attempt:
                    try:
                        response = await asyncio.wait_for(runnable.ainvoke(conversation), timeout=timeout)
                    except asyncio.TimeoutError as exc:
                        logger.warning("completion_deadline_exceeded", model=model or self.model, timeout=timeout)
                        raise DeadlineExceeded("completion", timeout) from exc
                    except Exception as exc:
                        logger.warning(
                            "completion_retry",
                            attempt=attempt.retry_state.attempt_number,
                            error=str(exc),
                            model=model or self.model,
                        )
                        raise
        except DeadlineExceeded:
            raise
        except Exception as exc:
            logger.error("completion_failed", error=str(exc), model=model or self.model)
            raise CompletionError(f"Completion failed: {exc}") from exc

        return _to_result(response)

    async def complete_json(
        self,
        system_prompt: str,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> dict[str, Any]:
        result = await self.complete(
            system_prompt,
            [user_message(prompt)],
            temperature=temperature,
            max_tokens=max_tokens,
            model=model,
            json_mode=True,
        )
        return parse_json_object(result.text)


def parse_json_object(text: str) -> dict[str, Any]:
    """Decode a JSON object, tolerating prose around the outermost braces."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end == -1 or end <= start:
            raise CompletionError("Completion response did not contain JSON") from None
        try:
            payload = json.loads(text[start : end + 1])
        except json.JSONDecodeError as exc:
            raise CompletionError(f"Completion response contained invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise CompletionError("Completion response JSON was not an object")
    return payload


def _to_result(response: Any) -> CompletionResult:
    message = response if isinstance(response, AIMessage) else None
    calls: list[ToolCallRequest] = []
    for index, raw in enumerate(getattr(response, "tool_calls", None) or []):
        arguments = raw.get("args") or {}
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                arguments = {"input": arguments}
        calls.append(
            ToolCallRequest(
                id=str(raw.get("id") or f"call_{index}"),
                name=str(raw.get("name") or ""),
                arguments=dict(arguments) if isinstance(arguments, Mapping) else {"input": arguments},
            )
        )
    return CompletionResult(text=_extract_content(response), tool_calls=calls, message=message)


def _extract_content(result: Any) -> str:
    content = getattr(result, "content", result)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, Mapping):
                parts.append(str(item.get("text", "")))
            else:
                parts.append(str(item))
        return " ".join(part for part in parts if part)
    return "" if content is None else str(content)
