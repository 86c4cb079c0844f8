"""Pytest configuration and fixtures."""

import random
from typing import List, Optional, Sequence

import pytest

from agents.game_master import GameMaster
from models.game import GameState, Phase, Player, Role, Side
from services.game_controller import GameController
from services.session_store import SessionStore


class FakeNarrator:
    """Records every narration request and answers with predictable text."""

    def __init__(self):
        self.night_calls = []
        self.win_calls = []

    async def narrate_night(self, dead: Optional[Player], saved: Optional[Player]) -> str:
        self.night_calls.append((dead, saved))
        if dead is not None:
            return f"{dead.name} died"
        if saved is not None:
            return f"{saved.name} was saved"
        return "quiet night"

    async def narrate_win(self, side: Side) -> str:
        self.win_calls.append(side)
        return f"{side.value} wins"


def make_players(roles: Sequence[Role], dead: Sequence[int] = ()) -> tuple:
    """Players p0..pN with the given roles; indexes in `dead` start eliminated."""
    return tuple(
        Player(id=f"p{i}", name=f"Player{i}", role=role, alive=i not in dead, avatar="🌴")
        for i, role in enumerate(roles)
    )


def make_state(roles: Sequence[Role], phase: Phase = Phase.NIGHT_INTRO,
               dead: Sequence[int] = (), round: int = 1) -> GameState:
    return GameState(phase=phase, players=make_players(roles, dead), round=round)


def ids_with_role(state: GameState, role: Role) -> List[str]:
    return [p.id for p in state.players if p.role is role]


@pytest.fixture
def master():
    return GameMaster()


@pytest.fixture
def fake_narrator():
    return FakeNarrator()


@pytest.fixture
def controller(fake_narrator):
    """Isolated controller: own store, fake narrator, seeded deal."""
    return GameController(
        store=SessionStore(),
        narrator=fake_narrator,
        rng=random.Random(1234),
    )


@pytest.fixture
def four_names():
    return ["Ana", "Beto", "Caro", "Dani"]
