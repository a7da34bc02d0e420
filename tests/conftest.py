import asyncio
from types import SimpleNamespace
from typing import Any, List, Optional, Tuple

import pytest


def make_chunk(content: Optional[str]) -> Any:
    if content is None:
        # e.g. a usage-only chunk
        return SimpleNamespace(choices=[])
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeStream:
    """Stands in for openai.AsyncStream: (delay_seconds, content) per chunk."""

    def __init__(self, script: List[Tuple[float, Optional[str]]]):
        self.script = script
        self.closed = False

    def __aiter__(self):
        return self._chunks()

    async def _chunks(self):
        for delay, content in self.script:
            if delay:
                await asyncio.sleep(delay)
            yield make_chunk(content)

    async def close(self) -> None:
        self.closed = True


class FakeCompletions:
    def __init__(self, fake: "FakeOpenAI"):
        self._fake = fake

    async def create(self, **kwargs):
        self._fake.requests.append(kwargs)
        if self._fake.connect_delay:
            await asyncio.sleep(self._fake.connect_delay)
        if self._fake.error is not None:
            raise self._fake.error
        stream = FakeStream(list(self._fake.script))
        self._fake.streams.append(stream)
        return stream


class FakeClient:
    def __init__(self, fake: "FakeOpenAI", **kwargs):
        self.kwargs = kwargs
        self.closed = False
        self.chat = SimpleNamespace(completions=FakeCompletions(fake))

    async def close(self) -> None:
        self.closed = True


class FakeOpenAI:
    def __init__(self):
        self.script: List[Tuple[float, Optional[str]]] = [(0, "Hi"), (0, " there")]
        self.connect_delay = 0.0
        self.error: Optional[Exception] = None
        self.clients: List[FakeClient] = []
        self.requests: List[dict] = []
        self.streams: List[FakeStream] = []

    def __call__(self, **kwargs) -> FakeClient:
        client = FakeClient(self, **kwargs)
        self.clients.append(client)
        return client


@pytest.fixture(autouse=True)
def no_credentials(monkeypatch):
    monkeypatch.delenv("XAI_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


@pytest.fixture
def fake_openai(monkeypatch):
    fake = FakeOpenAI()
    monkeypatch.setattr("mdchat.llm_client.AsyncOpenAI", fake)
    return fake
