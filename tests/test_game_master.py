"""Tests for the pure phase state machine and win evaluation."""

import pytest

from agents.game_master import (
    LEGAL_INTENTS, IllegalTransition, InvalidTarget, evaluate_winner,
)
from models.game import GameState, NightActions, Phase, Role, Side, WinOutcome

from conftest import make_players, make_state

M, D, X, C = Role.MAFIA, Role.DOCTOR, Role.DETECTIVE, Role.CITIZEN


# ── Win evaluator ─────────────────────────────────────────────────────────────

def test_town_wins_when_no_mafia_alive():
    assert evaluate_winner(make_players([M, C, C, D], dead=[0])) == WinOutcome.TOWN_WINS


def test_mafia_wins_at_parity():
    assert evaluate_winner(make_players([M, C, C, D], dead=[2, 3])) == WinOutcome.MAFIA_WINS


def test_mafia_wins_with_no_town_left():
    assert evaluate_winner(make_players([M, C], dead=[1])) == WinOutcome.MAFIA_WINS


def test_mafia_wins_with_majority():
    assert evaluate_winner(make_players([M, M, C, D, C], dead=[3, 4])) == WinOutcome.MAFIA_WINS


def test_ongoing_when_town_outnumbers_mafia():
    assert evaluate_winner(make_players([M, C, C, D])) == WinOutcome.ONGOING
    assert evaluate_winner(make_players([M, M, C, C, D, X], dead=[2])) == WinOutcome.ONGOING


def test_win_outcome_sides():
    assert WinOutcome.MAFIA_WINS.side == Side.MAFIA
    assert WinOutcome.TOWN_WINS.side == Side.TOWN
    assert WinOutcome.ONGOING.side is None


# ── Transition table ──────────────────────────────────────────────────────────

def test_every_phase_has_legal_intents():
    assert set(LEGAL_INTENTS) == set(Phase)


def test_illegal_intent_is_rejected(master):
    state = make_state([M, D, C, C], phase=Phase.DAY_DISCUSSION)
    with pytest.raises(IllegalTransition):
        master.begin_night(state)
    with pytest.raises(IllegalTransition):
        master.confirm_vote(state)


def test_role_reveal_walks_every_player(master):
    state = master.start(GameState(), make_players([M, D, C, C]))
    assert state.phase == Phase.ROLE_REVEAL_INTERSTITIAL
    seen = []
    for _ in range(4):
        state = master.acknowledge_reveal(state)
        assert state.phase == Phase.ROLE_REVEAL
        seen.append(state.current_player.id)
        state = master.advance_reveal(state)
    assert seen == ["p0", "p1", "p2", "p3"]
    assert state.phase == Phase.NIGHT_INTRO


def test_begin_night_resets_actions_and_counts_rounds(master):
    state = make_state([M, D, C, C], round=2).model_copy(
        update={"night_actions": NightActions(mafia_target_id="p2")}
    )
    night = master.begin_night(state)
    assert night.phase == Phase.NIGHT_MAFIA
    assert night.night_actions == NightActions()
    assert night.round == 3


def test_transitions_do_not_mutate_input(master):
    state = master.begin_night(make_state([M, D, X, C]))
    after, _ = master.select_night_target(state, "p3")
    assert state.night_actions.mafia_target_id is None
    assert after.night_actions.mafia_target_id == "p3"


# ── Night sequencing ──────────────────────────────────────────────────────────

def test_full_night_order(master):
    state = master.begin_night(make_state([M, D, X, C, C]))
    state, dawn = master.select_night_target(state, "p3")
    assert (state.phase, dawn) == (Phase.NIGHT_DOCTOR, False)
    state, dawn = master.select_night_target(state, "p4")
    assert (state.phase, dawn) == (Phase.NIGHT_DETECTIVE, False)
    state, dawn = master.select_night_target(state, "p0")
    assert (state.phase, dawn) == (Phase.NIGHT_DETECTIVE_RESULT, False)
    assert state.night_actions == NightActions(
        mafia_target_id="p3", doctor_saved_id="p4", detective_investigated_id="p0"
    )


def test_dead_doctor_is_skipped(master):
    state = master.begin_night(make_state([M, D, X, C, C], dead=[1]))
    state, dawn = master.select_night_target(state, "p3")
    assert state.phase == Phase.NIGHT_DETECTIVE
    assert dawn is False


def test_dawn_due_after_mafia_when_no_specialists_alive(master):
    state = master.begin_night(make_state([M, D, X, C, C], dead=[1, 2]))
    state, dawn = master.select_night_target(state, "p3")
    assert dawn is True
    assert state.phase == Phase.NIGHT_MAFIA
    assert state.night_actions.mafia_target_id == "p3"


def test_dawn_due_after_doctor_without_detective(master):
    state = master.begin_night(make_state([M, D, C, C]))
    state, _ = master.select_night_target(state, "p2")
    state, dawn = master.select_night_target(state, "p2")
    assert dawn is True
    assert state.night_actions.doctor_saved_id == "p2"


def test_detective_result_reports_mafia(master):
    state = master.begin_night(make_state([M, X, C, C]))
    state, _ = master.select_night_target(state, "p2")
    assert state.phase == Phase.NIGHT_DETECTIVE
    state, _ = master.select_night_target(state, "p0")
    result = master.detective_result(state)
    assert result.player.id == "p0"
    assert result.is_mafia is True


def test_dead_target_is_rejected(master):
    state = master.begin_night(make_state([M, D, C, C, C], dead=[3]))
    with pytest.raises(InvalidTarget):
        master.select_night_target(state, "p3")
    with pytest.raises(InvalidTarget):
        master.select_night_target(state, "nobody")


# ── Dawn ──────────────────────────────────────────────────────────────────────

def _night_with(master, mafia_target=None, doctor_saved=None):
    state = master.begin_night(make_state([M, D, C, C, C]))
    return state.model_copy(update={"night_actions": NightActions(
        mafia_target_id=mafia_target, doctor_saved_id=doctor_saved,
    )})


def test_kill_when_doctor_saves_someone_else(master):
    outcome = master.resolve_night(_night_with(master, "p2", "p3"))
    assert outcome.killed.id == "p2"
    assert outcome.killed.alive is False
    assert outcome.saved is None
    assert [p.alive for p in outcome.players] == [True, True, False, True, True]


def test_save_when_doctor_guesses_right(master):
    state = _night_with(master, "p2", "p2")
    outcome = master.resolve_night(state)
    assert outcome.killed is None
    assert outcome.saved.id == "p2"
    assert outcome.players == state.players


def test_quiet_night_without_target(master):
    state = _night_with(master)
    outcome = master.resolve_night(state)
    assert outcome.killed is None and outcome.saved is None
    assert outcome.players == state.players


def test_resolve_night_is_deterministic(master):
    state = _night_with(master, "p4", "p1")
    assert master.resolve_night(state) == master.resolve_night(state)


def test_commit_dawn_applies_outcome(master):
    state = _night_with(master, "p2", None)
    outcome = master.resolve_night(state)
    day = master.commit_dawn(state, outcome, "Player2 se fue")
    assert day.phase == Phase.DAY_ANNOUNCEMENT
    assert day.message == "Player2 se fue"
    assert day.get_player("p2").alive is False
    assert day.night_actions == NightActions()
    assert day.events[-1].type == "night_kill"


# ── Day ───────────────────────────────────────────────────────────────────────

def test_vote_flow_eliminates_selected_player(master):
    state = make_state([M, D, C, C, C], phase=Phase.DAY_DISCUSSION)
    state = master.begin_vote(state)
    state = master.select_vote_target(state, "p0")
    state = master.confirm_vote(state)
    assert state.phase == Phase.DAY_ELIMINATION_REVEAL
    assert state.get_player("p0").alive is False
    assert state.message == "El pueblo ha hablado. Player0 era... ¡MAFIA!"
    assert state.vote_target_id is None
    assert master.advance_elimination(state).phase == Phase.NIGHT_INTRO


def test_confirm_without_selection_is_rejected(master):
    state = master.begin_vote(make_state([M, D, C, C], phase=Phase.DAY_DISCUSSION))
    with pytest.raises(IllegalTransition):
        master.confirm_vote(state)


# ── Game end ──────────────────────────────────────────────────────────────────

def test_pending_winner_ignored_in_setup_and_game_over(master):
    decided = make_players([M, C], dead=[1])
    assert master.pending_winner(GameState(players=decided)) is None
    assert master.pending_winner(GameState(phase=Phase.GAME_OVER, players=decided)) is None
    assert master.pending_winner(GameState(phase=Phase.DAY_ANNOUNCEMENT, players=decided)) == Side.MAFIA


def test_declare_winner_is_idempotent(master):
    state = make_state([M, C], phase=Phase.DAY_ANNOUNCEMENT, dead=[1])
    over = master.declare_winner(state, Side.MAFIA, "ganó la mafia")
    assert over.phase == Phase.GAME_OVER
    assert over.winner == Side.MAFIA
    assert master.declare_winner(over, Side.TOWN, "otra vez") is over


def test_reset_returns_fresh_setup(master):
    over = master.declare_winner(
        make_state([M, C], phase=Phase.DAY_VOTE, dead=[1]), Side.MAFIA, "fin"
    )
    fresh = master.reset(over)
    assert fresh == GameState()
    with pytest.raises(IllegalTransition):
        master.reset(fresh)
