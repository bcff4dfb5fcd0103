"""Tests for the Gemini-backed completion client with the chat model faked out."""

import asyncio

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from petalwise.src.core.completion_client import CompletionClient, GeminiCompletionClient, _content_to_text
from petalwise.src.core.errors import ModelCallError


class FakeChatModel:
    def __init__(self, reply=None, error=None, delay=0.0, **kwargs):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.kwargs = kwargs
        self.messages = None

    async def ainvoke(self, messages):
        self.messages = messages
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


def _client_with(monkeypatch, llm, timeout_s=1.0):
    monkeypatch.setattr(GeminiCompletionClient, "_get_llm", lambda self, temperature, max_tokens: llm)
    return GeminiCompletionClient(model="gemini-test", timeout_s=timeout_s)


@pytest.mark.parametrize("content, expected", [
    ("plain", "plain"),
    (["a", {"type": "text", "text": "b"}, {"type": "image"}], "ab"),
    (None, ""),
])
def test_content_to_text(content, expected):
    assert _content_to_text(content) == expected


def test_satisfies_protocol():
    assert isinstance(GeminiCompletionClient(model="gemini-test"), CompletionClient)


@pytest.mark.asyncio
async def test_complete_sends_system_and_user_messages(monkeypatch):
    llm = FakeChatModel(reply=AIMessage(content='  {"prediction": {}}  '))
    client = _client_with(monkeypatch, llm)

    text = await client.complete("system rules", "batch prompt", temperature=0.7, max_tokens=800)

    assert text == '{"prediction": {}}'
    assert isinstance(llm.messages[0], SystemMessage) and llm.messages[0].content == "system rules"
    assert isinstance(llm.messages[1], HumanMessage) and llm.messages[1].content == "batch prompt"


@pytest.mark.asyncio
async def test_client_error_becomes_model_call_error(monkeypatch):
    client = _client_with(monkeypatch, FakeChatModel(error=ConnectionError("network unreachable")))
    with pytest.raises(ModelCallError, match="network unreachable"):
        await client.complete("s", "u", temperature=0.7, max_tokens=800)


@pytest.mark.asyncio
async def test_timeout_becomes_model_call_error(monkeypatch):
    client = _client_with(monkeypatch, FakeChatModel(reply=AIMessage(content="late"), delay=1.0), timeout_s=0.05)
    with pytest.raises(ModelCallError, match="timed out"):
        await client.complete("s", "u", temperature=0.7, max_tokens=800)


@pytest.mark.asyncio
async def test_empty_reply_is_an_error(monkeypatch):
    client = _client_with(monkeypatch, FakeChatModel(reply=AIMessage(content="   ")))
    with pytest.raises(ModelCallError, match="empty"):
        await client.complete("s", "u", temperature=0.7, max_tokens=800)


def test_chat_model_is_built_once_per_sampling_setting(monkeypatch):
    built = []

    def fake_chat_model(**kwargs):
        built.append(kwargs)
        return FakeChatModel(**kwargs)

    monkeypatch.setattr("langchain_google_genai.ChatGoogleGenerativeAI", fake_chat_model)
    client = GeminiCompletionClient(model="gemini-test")

    first = client._get_llm(0.7, 800)
    again = client._get_llm(0.7, 800)
    other = client._get_llm(0.2, 800)

    assert first is again and first is not other
    assert len(built) == 2
    assert built[0]["model"] == "gemini-test"
    assert built[0]["max_output_tokens"] == 800
