import json

import pytest
import requests

import config
from chat_client import ChatClient
from errors import GenerationError
from generator import build_prompt, extract_text, generate_cards, parse_cards


class FakeChatClient:
    def __init__(self, content):
        self.content = content
        self.calls = []

    def chat(self, **kwargs):
        self.calls.append(kwargs)
        return {"role": "assistant", "content": self.content}


def test_parse_cards_ignores_surrounding_text():
    content = 'Here you go:\n{"cards": [{"front": "Capital of France is ______.", "back": "Paris"}]}\nDone'
    cards = parse_cards(content)
    assert [(c.front, c.back) for c in cards] == [("Capital of France is ______.", "Paris")]


def test_parse_cards_drops_incomplete_entries():
    content = json.dumps({"cards": [
        {"front": "Which organ produces bile?", "back": "Liver"},
        {"front": "", "back": "nothing"},
        {"front": "no back"},
        "stray",
    ]})
    assert len(parse_cards(content)) == 1


@pytest.mark.parametrize("content", ["no json here", '{"cards": [}'])
def test_parse_cards_rejects_garbage(content):
    with pytest.raises(GenerationError):
        parse_cards(content)


def test_prompt_names_count_and_style():
    prompt = build_prompt("Mitochondria make ATP.", 7, "cloze")
    assert "EXACTLY 7 cards" in prompt
    assert "Cloze" in prompt
    assert prompt.endswith("Mitochondria make ATP.")


def test_generate_cards_truncates_text(monkeypatch):
    monkeypatch.setattr(config, "MAX_DOCUMENT_CHARS", 10)
    client = FakeChatClient('{"cards": [{"front": "q", "back": "a"}]}')

    cards = generate_cards(client, "0123456789ABCDEF", count=3, style="qa")

    assert len(cards) == 1
    [call] = client.calls
    assert call["message"].endswith("0123456789")
    assert call["response_format"] == {"type": "json_object"}


def test_generate_cards_validates_input():
    client = FakeChatClient('{"cards": []}')
    with pytest.raises(GenerationError):
        generate_cards(client, "text", style="essay")
    with pytest.raises(GenerationError):
        generate_cards(client, "   ")
    with pytest.raises(GenerationError):
        generate_cards(client, "some text")


def test_extract_text_rejects_non_pdf():
    with pytest.raises(GenerationError):
        extract_text(b"definitely not a pdf")


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload
        self.text = json.dumps(payload)

    def json(self):
        return self._payload


def test_chat_client_posts_completion(monkeypatch):
    captured = {}

    def fake_post(url, headers, json, timeout):
        captured.update(url=url, headers=headers, json=json)
        return FakeResponse(200, {"choices": [{"message": {"role": "assistant", "content": "hi"}}]})

    monkeypatch.setattr(requests, "post", fake_post)
    client = ChatClient(api_key="sk-test", base_url="https://llm.example/v1/", model="m")

    message = client.chat(message="hello", system="be brief")

    assert message["content"] == "hi"
    assert captured["url"] == "https://llm.example/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer sk-test"
    assert [m["role"] for m in captured["json"]["messages"]] == ["system", "user"]
    assert captured["json"]["model"] == "m"


def test_chat_client_raises_on_http_error(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **k: FakeResponse(500, {"error": "boom"}))
    client = ChatClient(api_key="sk-test")
    with pytest.raises(GenerationError):
        client.chat(message="hello")


def test_chat_client_requires_api_key():
    client = ChatClient(api_key="")
    client.api_key = None
    with pytest.raises(GenerationError):
        client.chat(message="hello")
