"""
Game Master: pure deterministic Python, no LLM, no I/O.

Responsibilities:
- Phase transitions (Setup → role reveal → Night → Day → Vote → Elimination → Night)
- Night action recording and dawn resolution (Mafia kill, Doctor save, Detective check)
- Vote elimination
- Win condition evaluation

Every transition takes a GameState and returns a new one; nothing is mutated in
place. Narration text is an input to the commits that need it; fetching it is
the controller's job.
"""
import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from models.game import (
    DetectiveResult, GameEvent, GameState, NightActions, NightOutcome, Phase,
    Player, Role, ROLE_LABELS, Side, WinOutcome,
)

logger = logging.getLogger(__name__)


# ── Errors ────────────────────────────────────────────────────────────────────

class GameRuleError(ValueError):
    """Base class for intents the rules reject."""


class SetupError(GameRuleError):
    """Configuration cannot start a game (too few players, bad role counts...)."""


class IllegalTransition(GameRuleError):
    """The intent is not legal in the current phase."""


class InvalidTarget(GameRuleError):
    """The chosen player does not exist or is already out of the game."""


# ── Intents and the transition table ──────────────────────────────────────────

class Intent(str, Enum):
    ADD_NAME = "add_name"
    REMOVE_NAME = "remove_name"
    SET_ROLE_CONFIG = "set_role_config"
    START = "start"
    ACKNOWLEDGE_REVEAL = "acknowledge_reveal"
    ADVANCE_REVEAL = "advance_reveal"
    BEGIN_NIGHT = "begin_night"
    SELECT_NIGHT_TARGET = "select_night_target"
    ADVANCE_DETECTIVE_RESULT = "advance_detective_result"
    ADVANCE_ANNOUNCEMENT = "advance_announcement"
    BEGIN_VOTE = "begin_vote"
    SELECT_VOTE_TARGET = "select_vote_target"
    CONFIRM_VOTE = "confirm_vote"
    ADVANCE_ELIMINATION = "advance_elimination"
    RESET = "reset"


LEGAL_INTENTS: Dict[Phase, FrozenSet[Intent]] = {
    Phase.SETUP: frozenset({
        Intent.ADD_NAME, Intent.REMOVE_NAME, Intent.SET_ROLE_CONFIG, Intent.START,
    }),
    Phase.ROLE_REVEAL_INTERSTITIAL: frozenset({Intent.ACKNOWLEDGE_REVEAL}),
    Phase.ROLE_REVEAL: frozenset({Intent.ADVANCE_REVEAL}),
    Phase.NIGHT_INTRO: frozenset({Intent.BEGIN_NIGHT}),
    Phase.NIGHT_MAFIA: frozenset({Intent.SELECT_NIGHT_TARGET}),
    Phase.NIGHT_DOCTOR: frozenset({Intent.SELECT_NIGHT_TARGET}),
    Phase.NIGHT_DETECTIVE: frozenset({Intent.SELECT_NIGHT_TARGET}),
    Phase.NIGHT_DETECTIVE_RESULT: frozenset({Intent.ADVANCE_DETECTIVE_RESULT}),
    Phase.DAY_ANNOUNCEMENT: frozenset({Intent.ADVANCE_ANNOUNCEMENT}),
    Phase.DAY_DISCUSSION: frozenset({Intent.BEGIN_VOTE}),
    Phase.DAY_VOTE: frozenset({Intent.SELECT_VOTE_TARGET, Intent.CONFIRM_VOTE}),
    Phase.DAY_ELIMINATION_REVEAL: frozenset({Intent.ADVANCE_ELIMINATION}),
    Phase.GAME_OVER: frozenset({Intent.RESET}),
}


# ── Win evaluation ────────────────────────────────────────────────────────────

def evaluate_winner(players: Iterable[Player]) -> WinOutcome:
    """
    Town wins when no Mafia is alive.
    Mafia wins once living Mafia reach parity with (or outnumber) everyone else.
    """
    alive_mafia = 0
    alive_town = 0
    for p in players:
        if not p.alive:
            continue
        if p.role is Role.MAFIA:
            alive_mafia += 1
        else:
            alive_town += 1

    if alive_mafia == 0:
        return WinOutcome.TOWN_WINS
    if alive_mafia >= alive_town:
        return WinOutcome.MAFIA_WINS
    return WinOutcome.ONGOING


class GameMaster:
    """
    Deterministic rules engine.
    Stateless: every method reads the GameState it is given.
    """

    # ── Guards ─────────────────────────────────────────────────────────────────

    def legal_intents(self, state: GameState) -> FrozenSet[Intent]:
        assert state.phase in LEGAL_INTENTS, f"Unhandled phase {state.phase}"
        return LEGAL_INTENTS[state.phase]

    def require(self, state: GameState, intent: Intent) -> None:
        if intent not in self.legal_intents(state):
            raise IllegalTransition(
                f"'{intent.value}' is not allowed during {state.phase.value}"
            )

    def require_living_target(self, state: GameState, player_id: str) -> Player:
        player = state.get_player(player_id)
        if player is None:
            raise InvalidTarget(f"Unknown player: {player_id}")
        if not player.alive:
            raise InvalidTarget(f"{player.name} is already out of the game")
        return player

    # ── Setup and role reveal ──────────────────────────────────────────────────

    def start(self, state: GameState, players: Tuple[Player, ...]) -> GameState:
        self.require(state, Intent.START)
        return GameState(
            phase=Phase.ROLE_REVEAL_INTERSTITIAL,
            players=players,
            current_turn_index=0,
        )

    def acknowledge_reveal(self, state: GameState) -> GameState:
        self.require(state, Intent.ACKNOWLEDGE_REVEAL)
        return state.model_copy(update={"phase": Phase.ROLE_REVEAL})

    def advance_reveal(self, state: GameState) -> GameState:
        """Hand the device to the next player, or close the reveal round."""
        self.require(state, Intent.ADVANCE_REVEAL)
        if state.current_turn_index < len(state.players) - 1:
            return state.model_copy(update={
                "phase": Phase.ROLE_REVEAL_INTERSTITIAL,
                "current_turn_index": state.current_turn_index + 1,
            })
        return state.model_copy(update={"phase": Phase.NIGHT_INTRO})

    # ── Night ──────────────────────────────────────────────────────────────────

    def begin_night(self, state: GameState) -> GameState:
        self.require(state, Intent.BEGIN_NIGHT)
        new_round = state.round + 1
        logger.info("Night %d begins (%d alive)", new_round, len(state.alive_players))
        return state.model_copy(update={
            "phase": Phase.NIGHT_MAFIA,
            "night_actions": NightActions(),
            "round": new_round,
            "message": "",
        })

    def next_night_phase(self, state: GameState, after: Phase) -> Optional[Phase]:
        """
        The next specialist to wake up after `after`, or None when dawn is due.
        Liveness is read from the roster as it is now: a Doctor or Detective
        voted out on an earlier day is never prompted.
        """
        if after == Phase.NIGHT_MAFIA and state.has_living(Role.DOCTOR):
            return Phase.NIGHT_DOCTOR
        if after in (Phase.NIGHT_MAFIA, Phase.NIGHT_DOCTOR) and state.has_living(Role.DETECTIVE):
            return Phase.NIGHT_DETECTIVE
        if after == Phase.NIGHT_DETECTIVE:
            return Phase.NIGHT_DETECTIVE_RESULT
        return None

    def select_night_target(
        self, state: GameState, target_id: str
    ) -> Tuple[GameState, bool]:
        """
        Record the acting role's target and move to the next night phase.

        Returns (new_state, dawn_due). When dawn is due the returned state keeps
        the current phase with the action recorded; the caller resolves dawn.
        """
        self.require(state, Intent.SELECT_NIGHT_TARGET)
        self.require_living_target(state, target_id)

        if state.phase == Phase.NIGHT_MAFIA:
            actions = state.night_actions.model_copy(update={"mafia_target_id": target_id})
        elif state.phase == Phase.NIGHT_DOCTOR:
            actions = state.night_actions.model_copy(update={"doctor_saved_id": target_id})
        else:
            actions = state.night_actions.model_copy(
                update={"detective_investigated_id": target_id}
            )

        recorded = state.model_copy(update={"night_actions": actions})
        next_phase = self.next_night_phase(recorded, state.phase)
        if next_phase is None:
            return recorded, True
        return recorded.model_copy(update={"phase": next_phase}), False

    def detective_result(self, state: GameState) -> Optional[DetectiveResult]:
        if state.phase != Phase.NIGHT_DETECTIVE_RESULT:
            return None
        target = state.get_player(state.night_actions.detective_investigated_id)
        if target is None:
            return None
        return DetectiveResult(player=target, is_mafia=target.is_mafia)

    def advance_detective_result(self, state: GameState) -> GameState:
        """Close the detective's private screen; dawn is always due afterwards."""
        self.require(state, Intent.ADVANCE_DETECTIVE_RESULT)
        return state

    def resolve_night(self, state: GameState) -> NightOutcome:
        """
        Compute the dawn outcome from the recorded night actions:
          - target set and not the doctor's pick → target dies
          - target equals the doctor's pick       → target saved, nobody dies
          - no target                             → quiet night
        """
        target_id = state.night_actions.mafia_target_id
        saved_id = state.night_actions.doctor_saved_id

        if target_id is not None and target_id != saved_id:
            players = tuple(
                p.eliminated() if p.id == target_id else p for p in state.players
            )
            killed = next((p for p in players if p.id == target_id), None)
            return NightOutcome(players=players, killed=killed)
        if target_id is not None:
            return NightOutcome(players=state.players, saved=state.get_player(target_id))
        return NightOutcome(players=state.players)

    def commit_dawn(
        self, state: GameState, outcome: NightOutcome, narration: str
    ) -> GameState:
        """Apply a resolved night: new roster, narration message, DAY_ANNOUNCEMENT."""
        events = list(state.events)
        investigated = state.get_player(state.night_actions.detective_investigated_id)
        if investigated is not None:
            events.append(GameEvent(
                type="investigation",
                round=state.round,
                phase=state.phase,
                target_id=investigated.id,
                target_name=investigated.name,
                data={"is_mafia": investigated.is_mafia},
            ))

        if outcome.killed is not None:
            events.append(GameEvent(
                type="night_kill", round=state.round, phase=state.phase,
                target_id=outcome.killed.id, target_name=outcome.killed.name,
                data={"role": outcome.killed.role.value},
            ))
            logger.info("Dawn %d: %s was killed", state.round, outcome.killed.name)
        elif outcome.saved is not None:
            events.append(GameEvent(
                type="night_save", round=state.round, phase=state.phase,
                target_id=outcome.saved.id, target_name=outcome.saved.name,
            ))
            logger.info("Dawn %d: %s was saved by the doctor", state.round, outcome.saved.name)
        else:
            events.append(GameEvent(type="quiet_night", round=state.round, phase=state.phase))
            logger.info("Dawn %d: quiet night", state.round)

        return state.model_copy(update={
            "phase": Phase.DAY_ANNOUNCEMENT,
            "players": outcome.players,
            "night_actions": NightActions(),
            "message": narration,
            "events": tuple(events),
        })

    # ── Day ────────────────────────────────────────────────────────────────────

    def advance_announcement(self, state: GameState) -> GameState:
        self.require(state, Intent.ADVANCE_ANNOUNCEMENT)
        return state.model_copy(update={"phase": Phase.DAY_DISCUSSION})

    def begin_vote(self, state: GameState) -> GameState:
        self.require(state, Intent.BEGIN_VOTE)
        return state.model_copy(update={"phase": Phase.DAY_VOTE, "vote_target_id": None})

    def select_vote_target(self, state: GameState, target_id: str) -> GameState:
        self.require(state, Intent.SELECT_VOTE_TARGET)
        self.require_living_target(state, target_id)
        return state.model_copy(update={"vote_target_id": target_id})

    def confirm_vote(self, state: GameState) -> GameState:
        """Eliminate the selected player and reveal their role to the table."""
        self.require(state, Intent.CONFIRM_VOTE)
        if state.vote_target_id is None:
            raise IllegalTransition("No player selected for elimination")
        target = self.require_living_target(state, state.vote_target_id)

        eliminated = target.eliminated()
        players = tuple(eliminated if p.id == target.id else p for p in state.players)
        message = f"El pueblo ha hablado. {target.name} era... ¡{ROLE_LABELS[target.role]}!"
        event = GameEvent(
            type="elimination", round=state.round, phase=state.phase,
            target_id=target.id, target_name=target.name,
            data={"role": target.role.value, "by_vote": True},
        )
        logger.info("Day %d: %s voted out (role=%s)", state.round, target.name, target.role.value)
        return state.model_copy(update={
            "phase": Phase.DAY_ELIMINATION_REVEAL,
            "players": players,
            "vote_target_id": None,
            "message": message,
            "events": state.events + (event,),
        })

    def advance_elimination(self, state: GameState) -> GameState:
        self.require(state, Intent.ADVANCE_ELIMINATION)
        return state.model_copy(update={"phase": Phase.NIGHT_INTRO})

    # ── Game end ───────────────────────────────────────────────────────────────

    def pending_winner(self, state: GameState) -> Optional[Side]:
        """The side that has just won, or None (also None once the game is over)."""
        if state.phase in (Phase.SETUP, Phase.GAME_OVER):
            return None
        return evaluate_winner(state.players).side

    def declare_winner(self, state: GameState, side: Side, narration: str) -> GameState:
        if state.phase == Phase.GAME_OVER:
            return state
        event = GameEvent(
            type="game_over", round=state.round, phase=state.phase,
            data={"winner": side.value},
        )
        logger.info("Game over after round %d: %s wins", state.round, side.value)
        return state.model_copy(update={
            "phase": Phase.GAME_OVER,
            "winner": side,
            "message": narration,
            "vote_target_id": None,
            "events": state.events + (event,),
        })

    def reset(self, state: GameState) -> GameState:
        self.require(state, Intent.RESET)
        return GameState()


# Module-level singleton
game_master = GameMaster()
