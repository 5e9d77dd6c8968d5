"""
Minimal client for OpenAI-compatible chat completion endpoints.
"""

import logging

import requests

import config
from errors import GenerationError

logger = logging.getLogger(__name__)


class ChatClient:
    HEADERS = {
        "User-Agent": "StudyCards/1.0",
        "Accept": "application/json",
    }

    def __init__(self, api_key=None, base_url=None, model=None, timeout=None):
        self.api_key = api_key or config.LLM_API_KEY
        self.base_url = (base_url or config.LLM_BASE_URL).rstrip("/")
        self.model = model or config.LLM_MODEL
        self.timeout = timeout or config.LLM_TIMEOUT

    def _headers(self):
        if not self.api_key:
            raise GenerationError("No API key configured. Set LLM_API_KEY or OPENAI_API_KEY.")
        return {
            **self.HEADERS,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def chat(
        self,
        message=None,
        messages=None,
        model=None,
        system=None,
        response_format=None,
        temperature=0.2,
    ):
        """
        Send a chat request and return the assistant message dict.
        Either a single user `message` or a full `messages` history is required.
        """
        if messages is None:
            if message is None:
                raise ValueError("Must provide 'message' or 'messages'")
            messages = [{"role": "user", "content": message}]
            if system:
                messages.insert(0, {"role": "system", "content": system})

        payload = {
            "messages": messages,
            "model": model or self.model,
            "temperature": temperature,
            "n": 1,
        }
        if response_format:
            payload["response_format"] = response_format

        try:
            response = requests.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GenerationError(f"Chat request failed: {e}") from e

        if not response.ok:
            raise GenerationError(
                f"API request failed: {response.status_code} - {response.text}"
            )

        result = response.json()
        try:
            return result["choices"][0]["message"]
        except (KeyError, IndexError) as e:
            raise GenerationError(f"Unexpected API response: {result}") from e
