"""
WebSocket Hub: live snapshot push for every screen watching a session.

URL: /ws/{game_id}

Connection flow:
  1. Accept connection → validate the session exists
  2. Send a "state" message with the current snapshot
  3. Message loop (dispatcher below)
  4. On disconnect: drop the socket

Server → client:
  state   - full snapshot, after every commit and when narration starts
  pong    - heartbeat reply
  error   - rejected intent {message, code}

Client → server: { type, data } where type is one of
  ping, addName, removeName, setRoleConfig, startGame, acknowledgeReveal,
  advanceReveal, beginNight, selectNightTarget, advanceFromDetectiveResult,
  advanceAnnouncement, beginVote, selectVoteTarget, confirmVote,
  advanceEliminationReveal, resetGame

Intents go through the same controller as the HTTP routes; the resulting
snapshot reaches this socket through the broadcast, not as a direct reply.
"""
import json
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from agents.game_master import GameRuleError, IllegalTransition
from models.game import RoleConfig, SessionSnapshot
from services.game_controller import NarrationInFlight, game_controller
from services.session_store import SessionNotFound

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


# ── Connection Manager ─────────────────────────────────────────────────────────

class ConnectionManager:
    """
    Tracks open WebSocket connections per session.
    Safe for asyncio single-threaded event loop (no extra locking needed).
    """

    def __init__(self):
        # {game_id: [WebSocket, ...]}
        self._games: Dict[str, List[WebSocket]] = {}

    async def connect(self, game_id: str, ws: WebSocket) -> None:
        await ws.accept()
        self._games.setdefault(game_id, []).append(ws)
        logger.debug(f"[{game_id}] screen connected ({self.count(game_id)} total)")

    def disconnect(self, game_id: str, ws: WebSocket) -> None:
        conns = self._games.get(game_id, [])
        if ws in conns:
            conns.remove(ws)
        if not conns:
            self._games.pop(game_id, None)
        logger.debug(f"[{game_id}] screen disconnected ({self.count(game_id)} left)")

    def count(self, game_id: str) -> int:
        return len(self._games.get(game_id, []))

    async def send(self, game_id: str, ws: WebSocket, message: Dict[str, Any]) -> None:
        try:
            await ws.send_json(message)
        except Exception as exc:
            logger.warning(f"[{game_id}] send failed: {exc}")
            self.disconnect(game_id, ws)

    async def broadcast(self, game_id: str, message: Dict[str, Any]) -> None:
        for ws in list(self._games.get(game_id, [])):
            await self.send(game_id, ws, message)

    async def publish_snapshot(self, snapshot: SessionSnapshot) -> None:
        """Controller listener: push every committed snapshot to the session's screens."""
        await self.broadcast(snapshot.game_id, state_message(snapshot))


def state_message(snapshot: SessionSnapshot) -> Dict[str, Any]:
    return {"type": "state", "data": snapshot.model_dump(mode="json")}


# Module-level singleton, subscribed to the controller at import time
manager = ConnectionManager()
game_controller.subscribe(manager.publish_snapshot)


# ── WebSocket endpoint ─────────────────────────────────────────────────────────

@router.websocket("/ws/{game_id}")
async def websocket_endpoint(ws: WebSocket, game_id: str):
    try:
        snapshot = game_controller.snapshot(game_id)
    except SessionNotFound:
        await ws.close(code=4404, reason="Game not found")
        return

    await manager.connect(game_id, ws)
    await manager.send(game_id, ws, state_message(snapshot))

    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await manager.send(game_id, ws, _error("Invalid JSON", "PARSE_ERROR"))
                continue
            if not isinstance(data, dict):
                await manager.send(game_id, ws, _error("Expected an object", "PARSE_ERROR"))
                continue

            msg_type = data.get("type", "")
            # Frontend sends { type, data: { ... } }; unwrap inner payload for handlers
            inner = data.get("data") if isinstance(data.get("data"), dict) else {}
            await _handle_message(game_id, ws, msg_type, inner)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(game_id, ws)


# ── Message dispatcher ─────────────────────────────────────────────────────────

def _error(message: str, code: str) -> Dict[str, Any]:
    return {"type": "error", "message": message, "code": code}


async def _handle_message(
    game_id: str, ws: WebSocket, msg_type: str, data: Dict[str, Any]
) -> None:
    try:
        await _dispatch_message(game_id, ws, msg_type, data)
    except SessionNotFound:
        await manager.send(game_id, ws, _error("Game not found", "NOT_FOUND"))
    except NarrationInFlight:
        await manager.send(game_id, ws, _error("Narration in progress, hold on", "BUSY"))
    except IllegalTransition as exc:
        await manager.send(game_id, ws, _error(str(exc), "ILLEGAL_TRANSITION"))
    except GameRuleError as exc:
        await manager.send(game_id, ws, _error(str(exc), "REJECTED"))
    except (KeyError, TypeError, ValueError, ValidationError) as exc:
        await manager.send(game_id, ws, _error(f"Bad payload: {exc}", "BAD_PAYLOAD"))
    except WebSocketDisconnect:
        raise
    except Exception:
        logger.exception("[%s] Unhandled error in _handle_message (type=%s)", game_id, msg_type)
        await manager.send(game_id, ws, _error("Internal server error", "SERVER_ERROR"))


async def _dispatch_message(
    game_id: str, ws: WebSocket, msg_type: str, data: Dict[str, Any]
) -> None:
    gc = game_controller

    if msg_type == "ping":
        await manager.send(game_id, ws, {"type": "pong"})

    elif msg_type == "addName":
        await gc.add_name(game_id, str(data["name"]))

    elif msg_type == "removeName":
        await gc.remove_name(game_id, int(data["index"]))

    elif msg_type == "setRoleConfig":
        await gc.set_role_config(game_id, RoleConfig.model_validate(data))

    elif msg_type == "startGame":
        await gc.start_game(game_id)

    elif msg_type == "acknowledgeReveal":
        await gc.acknowledge_reveal(game_id)

    elif msg_type == "advanceReveal":
        await gc.advance_reveal(game_id)

    elif msg_type == "beginNight":
        await gc.begin_night(game_id)

    elif msg_type == "selectNightTarget":
        await gc.select_night_target(game_id, str(data["playerId"]))

    elif msg_type == "advanceFromDetectiveResult":
        await gc.advance_detective_result(game_id)

    elif msg_type == "advanceAnnouncement":
        await gc.advance_announcement(game_id)

    elif msg_type == "beginVote":
        await gc.begin_vote(game_id)

    elif msg_type == "selectVoteTarget":
        await gc.select_vote_target(game_id, str(data["playerId"]))

    elif msg_type == "confirmVote":
        await gc.confirm_vote(game_id)

    elif msg_type == "advanceEliminationReveal":
        await gc.advance_elimination(game_id)

    elif msg_type == "resetGame":
        await gc.reset_game(game_id, bool(data.get("keepRoster", True)))

    else:
        await manager.send(game_id, ws, _error(
            f"Unknown message type: '{msg_type}'", "UNKNOWN_TYPE"
        ))
