"""Narrator fallbacks: the game never waits on, or fails because of, Gemini."""

import asyncio
from types import SimpleNamespace

import pytest

from agents import narrator_agent
from agents.narrator_agent import (
    Narrator, build_night_prompt, build_win_prompt, fallback_night, fallback_win,
)
from models.game import Player, Role, Side, WIN_LINES

ANA = Player(id="p0", name="Ana", role=Role.CITIZEN)


class FakeModels:
    def __init__(self, text=None, error=None, delay=0.0):
        self.text = text
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def _client(models):
    return SimpleNamespace(aio=SimpleNamespace(models=models))


@pytest.fixture(autouse=True)
def no_api_key(monkeypatch):
    monkeypatch.setattr(narrator_agent.settings, "gemini_api_key", "")


def test_without_api_key_uses_canned_lines():
    narrator = Narrator()
    assert asyncio.run(narrator.narrate_night(ANA, None)) == fallback_night(ANA, None)
    assert asyncio.run(narrator.narrate_night(None, ANA)) == fallback_night(None, ANA)
    assert asyncio.run(narrator.narrate_night(None, None)) == fallback_night(None, None)
    assert asyncio.run(narrator.narrate_win(Side.MAFIA)) == WIN_LINES[Side.MAFIA]


def test_fallback_lines_name_the_player():
    assert "Ana" in fallback_night(ANA, None)
    assert "salvó a Ana" in fallback_night(None, ANA)
    assert "Nadie murió" in fallback_night(None, None)
    assert fallback_win(Side.TOWN) == WIN_LINES[Side.TOWN]


def test_generated_text_is_stripped_and_returned():
    models = FakeModels(text="  ¡Eche, se fue Ana!  \n")
    narrator = Narrator(client=_client(models))

    assert asyncio.run(narrator.narrate_night(ANA, None)) == "¡Eche, se fue Ana!"
    assert "La mafia mató a Ana." in models.calls[0]["contents"]


def test_api_error_falls_back():
    narrator = Narrator(client=_client(FakeModels(error=RuntimeError("quota"))))
    assert asyncio.run(narrator.narrate_win(Side.TOWN)) == WIN_LINES[Side.TOWN]


def test_timeout_falls_back():
    narrator = Narrator(client=_client(FakeModels(text="too late", delay=1.0)), timeout=0.01)
    assert asyncio.run(narrator.narrate_night(None, ANA)) == fallback_night(None, ANA)


@pytest.mark.parametrize("text", ["", "   ", None])
def test_empty_response_falls_back(text):
    narrator = Narrator(client=_client(FakeModels(text=text)))
    assert asyncio.run(narrator.narrate_night(None, None)) == fallback_night(None, None)


def test_prompts_describe_the_outcome():
    assert "La mafia mató a Ana." in build_night_prompt(ANA, None)
    assert "el doctor lo salvó" in build_night_prompt(None, ANA)
    assert "Nadie murió" in build_night_prompt(None, None)
    assert "La Mafia" in build_win_prompt(Side.MAFIA)
    assert "El Pueblo" in build_win_prompt(Side.TOWN)
