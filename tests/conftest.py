"""Shared test fixtures."""

from __future__ import annotations

import random

import pytest

from fakes import FakeOpenAI
from stream_chat.agent import Agent
from stream_chat.config import Settings
from stream_chat.messages import Message, TextPart
from stream_chat.plugins.weather_plugin import WeatherPlugin


@pytest.fixture
def settings():
    return Settings(api_key="test-key", base_url="http://gateway.test/v1", tool_timeout=1.0)


@pytest.fixture
def make_agent(settings):
    """Build an agent whose upstream client replays the given scripts."""

    def factory(scripts, **overrides):
        client = FakeOpenAI(scripts)
        agent = Agent(
            [WeatherPlugin(rng=random.Random(7))],
            settings._replace(**overrides),
            client=client,
        )
        return agent, client.completions

    return factory


@pytest.fixture
def user_message():
    def factory(text="What's the weather in Berlin?", message_id="u1"):
        return Message(id=message_id, role="user", parts=[TextPart(content=text)])

    return factory
