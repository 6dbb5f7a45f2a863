"""Tests for the search API client."""

import asyncio
import dataclasses
from unittest.mock import AsyncMock

import httpx
import pytest
from openai import APIStatusError

from conftest import FakeAsyncStream, FakeOpenAI, make_chunk, make_completion
from newsin.core.errors import CompletionTimeoutError, InvalidConversationError, UpstreamError
from newsin.core.models import Message, Role
from newsin.infra.perplexity_client import EMPTY_COMPLETION_FALLBACK, SearchCompletionClient

MESSAGES = [Message(Role.SYSTEM, "Be helpful."), Message(Role.USER, "Any news?")]


def make_client(config, create) -> SearchCompletionClient:
    return SearchCompletionClient(config, client=FakeOpenAI(create))


def status_error(status: int, message: str) -> APIStatusError:
    request = httpx.Request("POST", "https://api.perplexity.ai/chat/completions")
    response = httpx.Response(status, request=request)
    return APIStatusError(message, response=response, body=None)


def test_request_parameters(config):
    create = AsyncMock(return_value=make_completion("ok"))

    asyncio.run(make_client(config, create).complete(MESSAGES))

    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "sonar-pro"
    assert kwargs["temperature"] == 0.4
    assert kwargs["max_tokens"] == 2500
    assert kwargs["stream"] is False
    assert kwargs["extra_body"] == {"search_recency_filter": "day"}
    assert kwargs["messages"] == [
        {"role": "system", "content": "Be helpful."},
        {"role": "user", "content": "Any news?"},
    ]


def test_citations_are_extracted(config):
    create = AsyncMock(return_value=make_completion("  Answer [1]  ", ["https://a.example"]))

    completion = asyncio.run(make_client(config, create).complete(MESSAGES))

    assert completion.content == "Answer [1]"
    assert completion.citations == ["https://a.example"]


def test_missing_citations_is_empty_list(config):
    create = AsyncMock(return_value=make_completion("Answer"))
    assert asyncio.run(make_client(config, create).complete(MESSAGES)).citations == []


def test_empty_content_uses_fallback(config):
    create = AsyncMock(return_value=make_completion(None))
    completion = asyncio.run(make_client(config, create).complete(MESSAGES))
    assert completion.content == EMPTY_COMPLETION_FALLBACK


def test_empty_conversation_is_rejected(config):
    create = AsyncMock()
    with pytest.raises(InvalidConversationError):
        asyncio.run(make_client(config, create).complete([]))
    create.assert_not_called()


def test_status_error_becomes_upstream_error(config):
    create = AsyncMock(side_effect=status_error(429, "rate limited"))

    with pytest.raises(UpstreamError, match="status 429: rate limited"):
        asyncio.run(make_client(config, create).complete(MESSAGES))
    assert create.call_count == 1


def test_slow_request_times_out(config):
    config = dataclasses.replace(config, request_timeout_ms=10)

    async def slow(**kwargs):
        await asyncio.sleep(1)

    with pytest.raises(CompletionTimeoutError, match="timed out"):
        asyncio.run(make_client(config, slow).complete(MESSAGES))


def test_has_credentials(config):
    assert make_client(config, AsyncMock()).has_credentials
    assert not make_client(dataclasses.replace(config, perplexity_api_key=""), AsyncMock()).has_credentials


class TestSearchStream:
    def test_yields_deltas_and_keeps_last_citations(self, config):
        upstream = FakeAsyncStream([
            make_chunk("Hello", ["https://a"]),
            make_chunk(None),
            make_chunk(" world", ["https://a", "https://b"]),
        ])
        client = make_client(config, AsyncMock(return_value=upstream))

        async def run():
            stream = await client.open_stream(MESSAGES)
            texts = [text async for text in stream]
            await stream.close()
            return stream, texts

        stream, texts = asyncio.run(run())

        assert texts == ["Hello", " world"]
        assert stream.citations == ["https://a", "https://b"]
        assert stream.chunks_received == 3
        assert upstream.closed

    def test_idle_stream_times_out(self, config):
        config = dataclasses.replace(config, request_timeout_ms=10)

        class StalledStream(FakeAsyncStream):
            async def _iterate(self):
                yield make_chunk("first")
                await asyncio.sleep(1)

        client = make_client(config, AsyncMock(return_value=StalledStream([])))

        async def run():
            stream = await client.open_stream(MESSAGES)
            return [text async for text in stream]

        with pytest.raises(CompletionTimeoutError):
            asyncio.run(run())

    def test_open_status_error(self, config):
        create = AsyncMock(side_effect=status_error(401, "unauthorized"))
        with pytest.raises(UpstreamError, match="status 401"):
            asyncio.run(make_client(config, create).open_stream(MESSAGES))
