"""Unit tests for the LLM provider layer."""

from __future__ import annotations

import base64
from unittest.mock import MagicMock

import pytest

from agent_task_orchestrator.core.config import LLMConfig
from agent_task_orchestrator.llm.factory import LLMFactory
from agent_task_orchestrator.llm.openai_provider import OpenAIProvider


def _client(reply: str | None) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create.return_value.choices = [MagicMock()]
    client.chat.completions.create.return_value.choices[0].message.content = reply
    return client


def test_factory_creates_openai_provider(llm_config: LLMConfig) -> None:
    provider = LLMFactory.create(llm_config)
    assert isinstance(provider, OpenAIProvider)
    assert provider.model == "gpt-4o-mini"


def test_provider_requires_api_key() -> None:
    with pytest.raises(ValueError, match="API key"):
        OpenAIProvider(LLMConfig(_env_file=None, openai_api_key=None))


def test_generate_sends_single_user_message(llm_config: LLMConfig) -> None:
    client = _client("hello")
    provider = OpenAIProvider(llm_config, client=client)

    assert provider.generate("Say hello", max_tokens=50) == "hello"

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["messages"] == [{"role": "user", "content": "Say hello"}]
    assert kwargs["max_tokens"] == 50
    assert kwargs["temperature"] == llm_config.openai_temperature


def test_empty_completion_is_empty_string(llm_config: LLMConfig) -> None:
    provider = OpenAIProvider(llm_config, client=_client(None))
    assert provider.chat([{"role": "user", "content": "x"}]) == ""


def test_describe_image_uses_vision_model_and_data_url() -> None:
    config = LLMConfig(openai_api_key="k", openai_vision_model="gpt-4o")
    client = _client('{"caption": "x"}')

    OpenAIProvider(config, client=client).describe_image("Describe", b"\x89PNG", "image/png")

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    text_part, image_part = kwargs["messages"][0]["content"]
    assert text_part == {"type": "text", "text": "Describe"}
    expected = "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()
    assert image_part["image_url"]["url"] == expected
