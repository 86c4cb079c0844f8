"""
Game HTTP endpoints: one route per host intent, each returning the new snapshot.

Routes:
  POST   /api/games                                      - Create a session (setup screen)
  GET    /api/games/{game_id}                            - Current snapshot
  DELETE /api/games/{game_id}                            - Close the session
  POST   /api/games/{game_id}/names                      - Add a player name
  DELETE /api/games/{game_id}/names/{index}              - Remove a player name
  PUT    /api/games/{game_id}/role-config                - Set role counts / policy
  GET    /api/games/{game_id}/setup-summary              - Role breakdown before start
  GET    /api/games/{game_id}/host                       - Host panel: roles and liveness
  POST   /api/games/{game_id}/start                      - Deal roles, begin reveal
  POST   /api/games/{game_id}/reveal/acknowledge         - "I have the phone"
  POST   /api/games/{game_id}/reveal/advance             - "Seen it, pass it on"
  POST   /api/games/{game_id}/night/begin                - Night falls
  POST   /api/games/{game_id}/night/target               - Mafia / Doctor / Detective pick
  POST   /api/games/{game_id}/night/detective-result/advance - Hide result, dawn
  POST   /api/games/{game_id}/day/announcement/advance   - Start discussion
  POST   /api/games/{game_id}/day/vote/begin             - Start vote
  POST   /api/games/{game_id}/day/vote/target            - Highlight a suspect
  POST   /api/games/{game_id}/day/vote/confirm           - Eliminate the suspect
  POST   /api/games/{game_id}/day/elimination/advance    - Next night
  POST   /api/games/{game_id}/reset                      - Play again
  GET    /api/games/{game_id}/result                     - Post-game reveals + timeline
"""
import logging
from typing import Any, Awaitable, TypeVar

from fastapi import APIRouter, HTTPException, Response

from agents.game_master import GameRuleError, IllegalTransition
from models.game import (
    AddNameRequest, HostView, ResetRequest, RoleConfig, SessionSnapshot,
    SetupSummary, TargetRequest,
)
from services.game_controller import NarrationInFlight, game_controller
from services.session_store import SessionNotFound

logger = logging.getLogger(__name__)

router = APIRouter(tags=["games"])

T = TypeVar("T")


async def _handle(game_id: str, call: Awaitable[T]) -> T:
    """Await a controller call and translate rule errors into HTTP errors."""
    try:
        return await call
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Game not found")
    except NarrationInFlight:
        raise HTTPException(status_code=409, detail="Narration in progress, hold on")
    except IllegalTransition as exc:
        logger.warning("[%s] Rejected intent: %s", game_id, exc)
        raise HTTPException(status_code=409, detail=str(exc))
    except GameRuleError as exc:
        logger.warning("[%s] Rejected intent: %s", game_id, exc)
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/games", response_model=SessionSnapshot, status_code=201)
async def create_game():
    """Open a new session on the setup screen."""
    return await game_controller.create_session()


@router.get("/games/{game_id}", response_model=SessionSnapshot)
async def get_game(game_id: str):
    try:
        return game_controller.snapshot(game_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Game not found")


@router.delete("/games/{game_id}", status_code=204)
async def close_game(game_id: str):
    try:
        game_controller.close_session(game_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Game not found")
    return Response(status_code=204)


# ── Setup ─────────────────────────────────────────────────────────────────────

@router.post("/games/{game_id}/names", response_model=SessionSnapshot)
async def add_name(game_id: str, body: AddNameRequest):
    return await _handle(game_id, game_controller.add_name(game_id, body.name))


@router.delete("/games/{game_id}/names/{index}", response_model=SessionSnapshot)
async def remove_name(game_id: str, index: int):
    return await _handle(game_id, game_controller.remove_name(game_id, index))


@router.put("/games/{game_id}/role-config", response_model=SessionSnapshot)
async def set_role_config(game_id: str, body: RoleConfig):
    return await _handle(game_id, game_controller.set_role_config(game_id, body))


@router.get("/games/{game_id}/host", response_model=HostView)
async def host_view(game_id: str):
    """Host panel: every role and who is still alive. Keep it off the shared screen."""
    try:
        return game_controller.host_view(game_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Game not found")


@router.get("/games/{game_id}/setup-summary", response_model=SetupSummary)
async def setup_summary(game_id: str):
    """Role breakdown for the current names and counts, plus why it can't start yet."""
    try:
        return game_controller.setup_summary(game_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Game not found")


@router.post("/games/{game_id}/start", response_model=SessionSnapshot)
async def start_game(game_id: str):
    """
    Validate the setup and deal roles.
    400 with a user-facing message when the setup can't start; the session stays in setup.
    """
    return await _handle(game_id, game_controller.start_game(game_id))


# ── Role reveal ───────────────────────────────────────────────────────────────

@router.post("/games/{game_id}/reveal/acknowledge", response_model=SessionSnapshot)
async def acknowledge_reveal(game_id: str):
    return await _handle(game_id, game_controller.acknowledge_reveal(game_id))


@router.post("/games/{game_id}/reveal/advance", response_model=SessionSnapshot)
async def advance_reveal(game_id: str):
    return await _handle(game_id, game_controller.advance_reveal(game_id))


# ── Night ─────────────────────────────────────────────────────────────────────

@router.post("/games/{game_id}/night/begin", response_model=SessionSnapshot)
async def begin_night(game_id: str):
    return await _handle(game_id, game_controller.begin_night(game_id))


@router.post("/games/{game_id}/night/target", response_model=SessionSnapshot)
async def select_night_target(game_id: str, body: TargetRequest):
    """
    Record the acting role's pick. When the last living specialist has acted
    this waits for dawn narration before responding.
    """
    return await _handle(
        game_id, game_controller.select_night_target(game_id, body.player_id)
    )


@router.post("/games/{game_id}/night/detective-result/advance", response_model=SessionSnapshot)
async def advance_detective_result(game_id: str):
    return await _handle(game_id, game_controller.advance_detective_result(game_id))


# ── Day ───────────────────────────────────────────────────────────────────────

@router.post("/games/{game_id}/day/announcement/advance", response_model=SessionSnapshot)
async def advance_announcement(game_id: str):
    return await _handle(game_id, game_controller.advance_announcement(game_id))


@router.post("/games/{game_id}/day/vote/begin", response_model=SessionSnapshot)
async def begin_vote(game_id: str):
    return await _handle(game_id, game_controller.begin_vote(game_id))


@router.post("/games/{game_id}/day/vote/target", response_model=SessionSnapshot)
async def select_vote_target(game_id: str, body: TargetRequest):
    return await _handle(
        game_id, game_controller.select_vote_target(game_id, body.player_id)
    )


@router.post("/games/{game_id}/day/vote/confirm", response_model=SessionSnapshot)
async def confirm_vote(game_id: str):
    return await _handle(game_id, game_controller.confirm_vote(game_id))


@router.post("/games/{game_id}/day/elimination/advance", response_model=SessionSnapshot)
async def advance_elimination(game_id: str):
    return await _handle(game_id, game_controller.advance_elimination(game_id))


# ── Game over ─────────────────────────────────────────────────────────────────

@router.post("/games/{game_id}/reset", response_model=SessionSnapshot)
async def reset_game(game_id: str, body: ResetRequest):
    return await _handle(game_id, game_controller.reset_game(game_id, body.keep_roster))


@router.get("/games/{game_id}/result")
async def get_result(game_id: str) -> Any:
    """
    Post-game result: winner, every player's role, and the timeline by round.
    Only available after the game has finished.
    """
    try:
        return game_controller.result(game_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Game not found")
    except GameRuleError:
        raise HTTPException(status_code=403, detail="Game has not finished yet")
