"""
Game Controller: the single owner of every session's GameState.

Sequences each host intent as:
  guard (session exists, not loading, intent legal) →
  pure transition (GameMaster) →
  narration fetch when the transition needs one (Narrator) →
  atomic commit of the new snapshot → win check → publish to listeners.

While narration is in flight the session sits in a loading sub-state and every
other intent on it is rejected with NarrationInFlight. The loading flag is set
before the first await, so on a single event loop nothing can interleave.
"""
import logging
import random
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional

from agents.game_master import (
    GameMaster, GameRuleError, Intent, SetupError, game_master,
)
from agents.narrator_agent import Narrator, narrator as default_narrator
from agents.role_assigner import RoleAssigner, role_assigner
from models.game import (
    NIGHT_ACTION_PHASES, PHASE_PROMPTS, ROLE_DESCRIPTIONS, ROLE_LABELS, GameState,
    HostPlayer, HostView, Phase, RoleConfig, SessionSnapshot, SetupSummary,
)
from services.session_store import (
    GameSession, SessionStore, default_role_config, get_session_store,
)

logger = logging.getLogger(__name__)

Listener = Callable[[SessionSnapshot], Awaitable[None]]

DAWN_LOADING_TEXT = "Amaneciendo... los gallos están cantando 🐓"
WIN_LOADING_TEXT = "Calculando quién ganó esta vaina..."


class NarrationInFlight(RuntimeError):
    """An intent arrived while the session is waiting on narration."""


class GameController:
    """
    Orchestrates sessions. One instance per process (see `game_controller`);
    tests build their own with a fake narrator and a seeded rng.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        narrator: Optional[Narrator] = None,
        master: Optional[GameMaster] = None,
        assigner: Optional[RoleAssigner] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store or get_session_store()
        self.narrator = narrator or default_narrator
        self.master = master or game_master
        self.assigner = assigner or role_assigner
        self._rng = rng
        self._listeners: List[Listener] = []

    # ── Listeners (WebSocket hub subscribes here) ─────────────────────────────

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _publish(self, session: GameSession) -> SessionSnapshot:
        session.touch()
        snapshot = self._snapshot(session)
        for listener in list(self._listeners):
            try:
                await listener(snapshot)
            except Exception as exc:
                logger.warning("[%s] Snapshot listener failed: %s", session.id, exc)
        return snapshot

    # ── Snapshots ──────────────────────────────────────────────────────────────

    def _snapshot(self, session: GameSession) -> SessionSnapshot:
        state = session.state
        current = None
        role_description = None
        if state.phase in (Phase.ROLE_REVEAL_INTERSTITIAL, Phase.ROLE_REVEAL):
            current = state.current_player
            if current is not None and state.phase == Phase.ROLE_REVEAL:
                role_description = ROLE_DESCRIPTIONS[current.role]

        living_targets = []
        if state.phase in NIGHT_ACTION_PHASES or state.phase == Phase.DAY_VOTE:
            living_targets = state.alive_players

        return SessionSnapshot(
            game_id=session.id,
            names=list(session.names),
            role_config=session.role_config,
            loading=session.loading,
            state=state,
            current_player=current,
            phase_prompt=PHASE_PROMPTS[state.phase],
            role_description=role_description,
            detective_result=self.master.detective_result(state),
            living_targets=living_targets,
        )

    def snapshot(self, game_id: str) -> SessionSnapshot:
        return self._snapshot(self.store.require(game_id))

    def host_view(self, game_id: str) -> HostView:
        """Roles and liveness for the moderator. Empty roster until the game starts."""
        state = self.store.require(game_id).state
        alive = state.alive_players
        alive_mafia = sum(1 for p in alive if p.is_mafia)
        return HostView(
            game_id=game_id,
            phase=state.phase,
            round=state.round,
            players=[
                HostPlayer(
                    id=p.id, name=p.name, avatar=p.avatar, role=p.role,
                    role_label=ROLE_LABELS[p.role], alive=p.alive,
                )
                for p in state.players
            ],
            alive_mafia=alive_mafia,
            alive_town=len(alive) - alive_mafia,
        )

    # ── Guards and commits ─────────────────────────────────────────────────────

    def _session(self, game_id: str) -> GameSession:
        session = self.store.require(game_id)
        if session.loading:
            logger.warning("[%s] Intent rejected while narrating", game_id)
            raise NarrationInFlight(session.loading)
        return session

    async def _commit(self, session: GameSession, state: GameState) -> SessionSnapshot:
        previous = session.state.phase
        session.state = state
        if state.phase != previous:
            logger.info("[%s] Phase: %s → %s", session.id, previous.value, state.phase.value)
        return await self._publish(session)

    @asynccontextmanager
    async def _narrating(self, session: GameSession, text: str):
        previous = session.loading
        session.loading = text
        await self._publish(session)
        try:
            yield
        finally:
            session.loading = previous

    async def _settle_winner(self, session: GameSession) -> None:
        """Move to GAME_OVER if the roster now decides the game. No-op otherwise."""
        side = self.master.pending_winner(session.state)
        if side is None:
            return
        async with self._narrating(session, WIN_LOADING_TEXT):
            text = await self.narrator.narrate_win(side)
            await self._commit(session, self.master.declare_winner(session.state, side, text))

    async def _resolve_dawn(self, session: GameSession, state: GameState) -> SessionSnapshot:
        outcome = self.master.resolve_night(state)
        async with self._narrating(session, DAWN_LOADING_TEXT):
            narration = await self.narrator.narrate_night(outcome.killed, outcome.saved)
            await self._commit(session, self.master.commit_dawn(state, outcome, narration))
            await self._settle_winner(session)
        return await self._publish(session)

    # ── Session lifecycle ─────────────────────────────────────────────────────

    async def create_session(self) -> SessionSnapshot:
        session = self.store.create()
        logger.info("[%s] Session created", session.id)
        return self._snapshot(session)

    def close_session(self, game_id: str) -> None:
        self.store.require(game_id)
        self.store.delete(game_id)
        logger.info("[%s] Session closed", game_id)

    # ── Setup ──────────────────────────────────────────────────────────────────

    async def add_name(self, game_id: str, name: str) -> SessionSnapshot:
        session = self._session(game_id)
        self.master.require(session.state, Intent.ADD_NAME)
        name = name.strip()
        if not name:
            raise SetupError("Escribe un nombre primero, pues.")
        session.names.append(name)
        return await self._publish(session)

    async def remove_name(self, game_id: str, index: int) -> SessionSnapshot:
        session = self._session(game_id)
        self.master.require(session.state, Intent.REMOVE_NAME)
        if not 0 <= index < len(session.names):
            raise SetupError(f"No hay jugador en la posición {index}.")
        session.names.pop(index)
        return await self._publish(session)

    async def set_role_config(self, game_id: str, config: RoleConfig) -> SessionSnapshot:
        session = self._session(game_id)
        self.master.require(session.state, Intent.SET_ROLE_CONFIG)
        session.role_config = config
        return await self._publish(session)

    def setup_summary(self, game_id: str) -> SetupSummary:
        session = self.store.require(game_id)
        return self.assigner.summary(session.names, session.role_config)

    async def start_game(self, game_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        self.master.require(session.state, Intent.START)
        self.assigner.validate(session.names, session.role_config)

        players = self.assigner.assign_roles(session.names, session.role_config, rng=self._rng)
        logger.info("[%s] Game started with %d players", game_id, len(players))
        return await self._commit(session, self.master.start(session.state, players))

    # ── Role reveal ────────────────────────────────────────────────────────────

    async def acknowledge_reveal(self, game_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        return await self._commit(session, self.master.acknowledge_reveal(session.state))

    async def advance_reveal(self, game_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        return await self._commit(session, self.master.advance_reveal(session.state))

    # ── Night ──────────────────────────────────────────────────────────────────

    async def begin_night(self, game_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        return await self._commit(session, self.master.begin_night(session.state))

    async def select_night_target(self, game_id: str, player_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        state, dawn_due = self.master.select_night_target(session.state, player_id)
        if dawn_due:
            return await self._resolve_dawn(session, state)
        return await self._commit(session, state)

    async def advance_detective_result(self, game_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        state = self.master.advance_detective_result(session.state)
        return await self._resolve_dawn(session, state)

    # ── Day ────────────────────────────────────────────────────────────────────

    async def advance_announcement(self, game_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        return await self._commit(session, self.master.advance_announcement(session.state))

    async def begin_vote(self, game_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        return await self._commit(session, self.master.begin_vote(session.state))

    async def select_vote_target(self, game_id: str, player_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        return await self._commit(session, self.master.select_vote_target(session.state, player_id))

    async def confirm_vote(self, game_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        state = self.master.confirm_vote(session.state)
        if self.master.pending_winner(state) is None:
            return await self._commit(session, state)

        # The vote decided the game: nothing may slip in before GAME_OVER
        async with self._narrating(session, WIN_LOADING_TEXT):
            await self._commit(session, state)
            await self._settle_winner(session)
        return await self._publish(session)

    async def advance_elimination(self, game_id: str) -> SessionSnapshot:
        session = self._session(game_id)
        return await self._commit(session, self.master.advance_elimination(session.state))

    # ── Game over ──────────────────────────────────────────────────────────────

    async def reset_game(self, game_id: str, keep_roster: bool = True) -> SessionSnapshot:
        """Back to SETUP. keep_roster=False also forgets names and role counts."""
        session = self._session(game_id)
        state = self.master.reset(session.state)
        if not keep_roster:
            session.names = []
            session.role_config = default_role_config()
        logger.info("[%s] Reset (keep_roster=%s)", game_id, keep_roster)
        return await self._commit(session, state)

    def result(self, game_id: str) -> Dict[str, Any]:
        """
        Post-game reveal: every player's role and the public timeline by round.
        Raises GameRuleError until the game is over.
        """
        session = self.store.require(game_id)
        state = session.state
        if state.phase != Phase.GAME_OVER:
            raise GameRuleError("Game has not finished yet")

        by_round: Dict[int, list] = {}
        for ev in state.events:
            by_round.setdefault(ev.round, []).append({
                "type": ev.type,
                "targetId": ev.target_id,
                "targetName": ev.target_name,
                "data": ev.data,
            })

        return {
            "winner": state.winner.value if state.winner else None,
            "message": state.message,
            "reveals": [
                {
                    "playerId": p.id,
                    "playerName": p.name,
                    "avatar": p.avatar,
                    "role": p.role.value,
                    "alive": p.alive,
                }
                for p in state.players
            ],
            "timeline": [{"round": r, "events": evs} for r, evs in sorted(by_round.items())],
        }


# Module-level singleton, imported by the routers
game_controller = GameController()
