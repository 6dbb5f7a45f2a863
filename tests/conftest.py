"""Shared fixtures and fakes for the assistant tests."""

from types import SimpleNamespace
from typing import List, Optional

import pytest

from newsin.config import AppConfig
from newsin.core.engine import AssistantEngine
from newsin.infra.perplexity_client import SearchCompletionClient
from newsin.storage.database import create_session_factory


def make_chunk(content: Optional[str] = None, citations: Optional[List[str]] = None):
    """Build an object shaped like an OpenAI ChatCompletionChunk."""
    choices = [] if content is None else [SimpleNamespace(delta=SimpleNamespace(content=content))]
    chunk = SimpleNamespace(choices=choices)
    if citations is not None:
        chunk.citations = citations
    return chunk


def make_completion(content: Optional[str], citations: Optional[List[str]] = None):
    """Build an object shaped like an OpenAI ChatCompletion."""
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
    )
    if citations is not None:
        response.citations = citations
    return response


class FakeAsyncStream:
    """Minimal stand-in for openai.AsyncStream."""

    def __init__(self, chunks, error: Optional[Exception] = None):
        self._chunks = list(chunks)
        self._error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error

    async def close(self):
        self.closed = True


class FakeOpenAI:
    """Fake AsyncOpenAI exposing chat.completions.create."""

    def __init__(self, create):
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=create))


class FakeTextClient:
    """Fake generative client that tags rewritten text."""

    def __init__(self, has_credentials: bool = True, fail_stream: bool = False, fail_rewrite: bool = False):
        self.has_credentials = has_credentials
        self.fail_stream = fail_stream
        self.fail_rewrite = fail_rewrite
        self.rewritten: List[str] = []

    async def improve_readability(self, text, request_id=None):
        self.rewritten.append(text)
        if self.fail_rewrite:
            raise RuntimeError("generative backend returned 503")
        return f"<{text}>"

    async def improve_readability_stream(self, text, request_id=None):
        self.rewritten.append(text)
        if self.fail_stream:
            raise RuntimeError("generative backend exploded")
        yield "<"
        yield text
        yield ">"

    async def summarize(self, text, request_id=None):
        return f"summary of {len(text)} chars"

    async def recommend(self, interests, recent_articles, request_id=None):
        return f"recommendations for {', '.join(interests)}"

    async def chat(self, history, message, request_id=None):
        return f"{len(history)} turns then: {message}"


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        perplexity_api_key="test-key",
        database_url="sqlite://",
        stream_min_chunk_chars=10,
        stream_max_chunk_chars=200,
        stream_flush_interval_ms=60_000,
    )


@pytest.fixture
def session_factory():
    return create_session_factory("sqlite://", create_tables=True)


@pytest.fixture
def text_client() -> FakeTextClient:
    return FakeTextClient()


def build_engine(config, create, text_client, session_factory) -> AssistantEngine:
    search = SearchCompletionClient(config, client=FakeOpenAI(create))
    return AssistantEngine(
        config=config,
        search_client=search,
        text_client=text_client,
        db_session_factory=session_factory,
    )
