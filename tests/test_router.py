"""Tests for provider selection, the stream contract and the callback driver"""

import asyncio
import json

import httpx
import pytest

from chatwire.config.schema import ProviderConfig
from chatwire.provider.base import Delta, Done, Error, Started, is_terminal
from chatwire.provider.collect import ChatResult, collect_chat, probe_connection
from chatwire.provider.endpoints import ProviderKind
from chatwire.provider.openai import OpenAICompatibleProvider
from chatwire.provider.router import CANCELLED_MESSAGE, PROVIDERS, get_provider, run_chat, stream_chat

CHAT_URL = "https://api.openai.com/v1/chat/completions"


def chunk(content):
    return {"choices": [{"delta": {"content": content}, "finish_reason": None}]}


@pytest.fixture
def config():
    return ProviderConfig(provider_kind="openai", api_key="sk", model="gpt-4o")


class TestProviderRegistry:
    def test_every_kind_has_a_provider(self):
        assert set(PROVIDERS) == set(ProviderKind)

    @pytest.mark.parametrize("kind", list(ProviderKind))
    def test_get_provider_builds_fresh_instances(self, kind):
        config = ProviderConfig(provider_kind=kind, model="m")
        first = get_provider(config)
        second = get_provider(config)
        assert isinstance(first, PROVIDERS[kind])
        assert first is not second


class TestEventVocabulary:
    def test_to_dict(self):
        assert Started("id-1").to_dict() == {"event": "started", "data": {"message_id": "id-1"}}
        assert Delta("hi").to_dict() == {"event": "delta", "data": {"content": "hi"}}
        assert Done(12).to_dict() == {"event": "done", "data": {"total_tokens": 12}}
        assert Error("boom").to_dict() == {"event": "error", "data": {"message": "boom"}}

    def test_terminal_events(self):
        assert is_terminal(Done())
        assert is_terminal(Error("x"))
        assert not is_terminal(Delta("x"))
        assert not is_terminal(Started("x"))


class TestStreamContract:
    @pytest.mark.asyncio
    async def test_started_first_and_single_terminal_last(self, upstream, config, messages, collect):
        upstream.sse(CHAT_URL, [chunk("a"), chunk("b")], done=True)

        events = await collect(stream_chat(config, messages, client=upstream.client))

        assert isinstance(events[0], Started)
        assert sum(is_terminal(e) for e in events) == 1
        assert is_terminal(events[-1])

    @pytest.mark.asyncio
    async def test_message_ids_are_unique(self, upstream, config, messages, collect):
        upstream.sse(CHAT_URL, [chunk("a")], done=True)

        first = await collect(stream_chat(config, messages, client=upstream.client))
        second = await collect(stream_chat(config, messages, client=upstream.client))

        assert first[0].message_id
        assert first[0].message_id != second[0].message_id

    @pytest.mark.asyncio
    async def test_accepts_plain_dict_messages(self, upstream, config, collect):
        upstream.sse(CHAT_URL, [chunk("a")], done=True)

        events = await collect(stream_chat(config, [{"role": "user", "content": "hi"}], client=upstream.client))

        assert events[1:] == [Delta("a"), Done(0)]
        assert upstream.body()["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_invalid_role_is_an_error_event(self, upstream, config, collect):
        events = await collect(stream_chat(config, [{"role": "tool", "content": "x"}], client=upstream.client))

        assert isinstance(events[0], Started)
        assert len(events) == 2
        assert events[1].message.startswith("Invalid message")
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_an_error_event(self, config, messages, collect, monkeypatch):
        async def broken_stream(self, messages):
            raise RuntimeError("boom")
            yield

        monkeypatch.setattr(OpenAICompatibleProvider, "stream", broken_stream)

        events = await collect(stream_chat(config, messages))

        assert events[1:] == [Error("Stream error: boom")]

    @pytest.mark.asyncio
    async def test_adapter_without_terminal_gets_done(self, config, messages, collect, monkeypatch):
        async def short_stream(self, messages):
            yield Delta("only")

        monkeypatch.setattr(OpenAICompatibleProvider, "stream", short_stream)

        events = await collect(stream_chat(config, messages))

        assert events[1:] == [Delta("only"), Done(0)]

    @pytest.mark.asyncio
    async def test_nothing_after_terminal(self, config, messages, collect, monkeypatch):
        async def chatty_stream(self, messages):
            yield Delta("a")
            yield Done(3)
            yield Delta("ghost")

        monkeypatch.setattr(OpenAICompatibleProvider, "stream", chatty_stream)

        events = await collect(stream_chat(config, messages))

        assert events[1:] == [Delta("a"), Done(3)]


def hanging_upstream(first: bytes):
    """Serve one SSE chunk, then never send anything else"""
    async def body():
        yield first
        await asyncio.sleep(3600)

    def handler(request):
        return httpx.Response(200, content=body())

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestRunChat:
    @pytest.mark.asyncio
    async def test_callback_sees_events_in_order(self, upstream, config, messages):
        upstream.sse(CHAT_URL, [chunk("a"), chunk("b")], done=True)
        seen = []

        await run_chat(config, messages, seen.append, client=upstream.client)

        assert isinstance(seen[0], Started)
        assert seen[1:] == [Delta("a"), Delta("b"), Done(0)]

    @pytest.mark.asyncio
    async def test_cancel_ends_with_cancelled_error(self, config, messages):
        first = f"data: {json.dumps(chunk('a'))}\n\n".encode()
        cancel = asyncio.Event()
        seen = []

        def on_event(event):
            seen.append(event)
            if isinstance(event, Delta):
                cancel.set()

        async with hanging_upstream(first) as client:
            await asyncio.wait_for(
                run_chat(config, messages, on_event, cancel=cancel, client=client),
                timeout=5,
            )

        assert isinstance(seen[0], Started)
        assert seen[1:] == [Delta("a"), Error(CANCELLED_MESSAGE)]

    @pytest.mark.asyncio
    async def test_cancel_after_completion_adds_nothing(self, upstream, config, messages):
        upstream.sse(CHAT_URL, [chunk("a")], done=True)
        cancel = asyncio.Event()
        seen = []

        await run_chat(config, messages, seen.append, cancel=cancel, client=upstream.client)
        cancel.set()

        assert seen[1:] == [Delta("a"), Done(0)]

    @pytest.mark.asyncio
    async def test_closing_the_generator_early(self, config, messages):
        first = f"data: {json.dumps(chunk('a'))}\n\n".encode()
        async with hanging_upstream(first) as client:
            events = stream_chat(config, messages, client=client)

            assert isinstance(await events.__anext__(), Started)
            assert await events.__anext__() == Delta("a")
            await events.aclose()

            with pytest.raises(StopAsyncIteration):
                await events.__anext__()


class TestCollect:
    @pytest.mark.asyncio
    async def test_collect_chat(self, upstream, config, messages):
        upstream.sse(CHAT_URL, [
            chunk("Hel"),
            chunk("lo"),
            {"choices": [{"delta": {}, "finish_reason": "stop"}], "usage": {"total_tokens": 9}},
        ], done=True)

        result = await collect_chat(config, messages, client=upstream.client)

        assert result.ok
        assert result.content == "Hello"
        assert result.total_tokens == 9
        assert result.message_id

    @pytest.mark.asyncio
    async def test_collect_chat_error(self, upstream, config, messages):
        upstream.text("POST", CHAT_URL, "nope", status=500)

        result = await collect_chat(config, messages, client=upstream.client)

        assert not result.ok
        assert result.error == "API error 500: nope"
        assert result.content == ""

    def test_chat_result_defaults(self):
        assert ChatResult().ok

    @pytest.mark.asyncio
    async def test_probe_success_uses_default_model(self, upstream):
        upstream.sse(CHAT_URL, [chunk("Hi")], done=True)
        config = ProviderConfig(provider_kind="openai", api_key="sk")

        check = await probe_connection(config, client=upstream.client)

        assert check.success
        assert check.error is None
        body = upstream.body()
        assert body["model"] == "gpt-4o-mini"
        assert body["messages"] == [{"role": "user", "content": "Hello"}]

    @pytest.mark.asyncio
    async def test_probe_explicit_model_wins(self, upstream, config):
        upstream.sse(CHAT_URL, [chunk("Hi")], done=True)

        await probe_connection(config, model="o3-mini", client=upstream.client)

        assert upstream.body()["model"] == "o3-mini"

    @pytest.mark.asyncio
    async def test_probe_without_content(self, upstream, config):
        upstream.sse(CHAT_URL, [], done=True)

        check = await probe_connection(config, client=upstream.client)

        assert not check.success
        assert check.error == "No response received"

    @pytest.mark.asyncio
    async def test_probe_reports_upstream_error(self, upstream, config):
        upstream.text("POST", CHAT_URL, "invalid key", status=401)

        check = await probe_connection(config, client=upstream.client)

        assert not check.success
        assert check.error == "API error 401: invalid key"


class TestMockUpstream:
    @pytest.mark.asyncio
    async def test_client_is_shared_and_closed(self):
        from conftest import MockUpstream

        mock = MockUpstream()
        client = mock.client

        assert mock.client is client
        await mock.aclose()
        assert client.is_closed
