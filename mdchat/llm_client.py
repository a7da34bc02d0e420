# mdchat/llm_client.py
import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from openai import AsyncOpenAI

from mdchat.errors import ChunkTimeoutError, ConfigurationError, MissingCredentialError, RequestTimeoutError
from mdchat.settings import MODEL_IDS
from mdchat.transcript import Turn

logger = logging.getLogger("mdchat_llm")

CONNECT_TIMEOUT_SECONDS = 30.0
CHUNK_TIMEOUT_SECONDS = 15.0

XAI_BASE_URL = "https://api.x.ai/v1"


@dataclass(frozen=True)
class ProviderRoute:
    provider: str
    base_url: Optional[str]  # None -> OpenAI client default
    api_key_env: str
    model_name: str


#! PROVIDER ROUTING

def is_grok_model(model_id: str) -> bool:
    return model_id.startswith("grok")


def resolve_route(model_id: str) -> ProviderRoute:
    """
    Map an accepted model id to the endpoint, credential variable and
    provider-side model name used to serve it.
    """
    if model_id not in MODEL_IDS:
        raise ConfigurationError(f"resolve_route: unsupported model '{model_id}'. Expected one of {list(MODEL_IDS)}")

    if is_grok_model(model_id):
        return ProviderRoute(provider="xai", base_url=XAI_BASE_URL, api_key_env="XAI_API_KEY", model_name=model_id)
    return ProviderRoute(provider="openai", base_url=None, api_key_env="OPENAI_API_KEY", model_name=model_id)


def read_credential(route: ProviderRoute) -> str:
    # read on every request, never cached
    api_key = (os.environ.get(route.api_key_env) or "").strip()
    if not api_key:
        raise MissingCredentialError(f"{route.api_key_env} environment variable is not set.")
    return api_key


def to_openai_messages(turns: Sequence[Turn]) -> List[Dict[str, str]]:
    return [turn.to_dict() for turn in turns]


def _fragment_text(chunk: Any) -> str:
    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    return getattr(delta, "content", None) or ""


async def _close_quietly(resource: Any, what: str) -> None:
    close = getattr(resource, "close", None)
    if close is None:
        return
    try:
        result = close()
        if asyncio.iscoroutine(result):
            await result
    except Exception as e:
        logger.debug(f"Error while closing {what}: {e}")


#! STREAMING

class CompletionStream:
    """
    Async iterator over the text fragments of one streamed chat completion.

        stream = await open_completion_stream(turns, "gpt-4.1")
        async for fragment in stream:
            ...

    Every provider chunk must arrive within `chunk_timeout` seconds, otherwise
    the stream is closed and ChunkTimeoutError is raised. Chunks carrying no
    text are skipped.
    """

    def __init__(self, stream: Any, *, client: Any = None, model_name: str = "", chunk_timeout: float = CHUNK_TIMEOUT_SECONDS):
        self._stream = stream
        self._iterator = stream.__aiter__()
        self._client = client
        self.model_name = model_name
        self._chunk_timeout = chunk_timeout
        self._closed = False
        self.fragment_count = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "CompletionStream":
        return self

    async def __anext__(self) -> str:
        while True:
            if self._closed:
                raise StopAsyncIteration
            try:
                chunk = await asyncio.wait_for(self._iterator.__anext__(), timeout=self._chunk_timeout)
            except StopAsyncIteration:
                await self.aclose()
                raise
            except asyncio.TimeoutError:
                await self.aclose()
                raise ChunkTimeoutError(
                    f"No stream chunk from {self.model_name or 'provider'} within {self._chunk_timeout:g}s "
                    f"(after {self.fragment_count} fragments)."
                ) from None
            except BaseException:
                await self.aclose()
                raise

            text = _fragment_text(chunk)
            if text:
                self.fragment_count += 1
                return text

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await _close_quietly(self._stream, "completion stream")
        if self._client is not None:
            await _close_quietly(self._client, "completion client")


async def open_completion_stream(
    turns: Sequence[Turn],
    model_id: str,
    *,
    connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
    chunk_timeout: float = CHUNK_TIMEOUT_SECONDS,
) -> CompletionStream:
    """
    Resolve the provider, check its credential and establish the streaming
    request. Nothing has been emitted to the caller if this raises.
    """
    route = resolve_route(model_id)
    api_key = read_credential(route)

    client_kwargs: Dict[str, Any] = {"api_key": api_key, "max_retries": 0}
    if route.base_url is not None:
        client_kwargs["base_url"] = route.base_url
    client = AsyncOpenAI(**client_kwargs)

    logger.debug(f"Opening {route.provider} stream model={route.model_name} turns={len(turns)}")
    try:
        stream = await asyncio.wait_for(
            client.chat.completions.create(
                model=route.model_name,
                messages=to_openai_messages(turns),
                stream=True,
            ),
            timeout=connect_timeout,
        )
    except asyncio.TimeoutError:
        await _close_quietly(client, "completion client")
        raise RequestTimeoutError(
            f"{route.provider} did not accept the completion request within {connect_timeout:g}s."
        ) from None
    except BaseException:
        await _close_quietly(client, "completion client")
        raise

    return CompletionStream(stream, client=client, model_name=route.model_name, chunk_timeout=chunk_timeout)


async def stream_completion(
    turns: Sequence[Turn],
    model_id: str,
    *,
    connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
    chunk_timeout: float = CHUNK_TIMEOUT_SECONDS,
) -> AsyncIterator[str]:
    stream = await open_completion_stream(
        turns, model_id, connect_timeout=connect_timeout, chunk_timeout=chunk_timeout
    )
    try:
        async for fragment in stream:
            yield fragment
    finally:
        await stream.aclose()
