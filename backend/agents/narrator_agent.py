"""
Narrator Agent: costeño flavour text for dawn and game-over screens.

Uses gemini-2.5-flash (text only) for two single-shot calls:
  1. narrate_night - who died, who the Doctor saved, or a quiet night
  2. narrate_win   - celebration line for the winning side

The narrator never fails the caller. A missing API key, a timeout, an API error
or an empty response all degrade to a canned line for the same outcome.
"""
import asyncio
import logging
from typing import Any, Optional

from google import genai
from google.genai import types

from config import settings
from models.game import Player, Side, WIN_LINES

logger = logging.getLogger(__name__)


# ── Canned lines (used whenever Gemini is unavailable) ────────────────────────

def fallback_night(dead: Optional[Player], saved: Optional[Player]) -> str:
    if dead is not None:
        return (
            f"Amaneció medio raro… y por desgracia, a {dead.name} se lo llevó la mafia. "
            "Dios lo tenga en su gloria costeña."
        )
    if saved is not None:
        return (
            "¡Milagro en la costa! La mafia intentó hacer la vuelta, pero el doctor "
            f"llegó en moto a última hora y salvó a {saved.name}. ¡Aquí no se murió nadie hoy!"
        )
    return "¡Qué noche tan tranquila! Nadie murió, la mafia se quedó dormida o se fueron de rumba."


def fallback_win(side: Side) -> str:
    return WIN_LINES[side]


# ── Prompts ───────────────────────────────────────────────────────────────────

_NIGHT_PROMPT = """Actúa como un narrador de historias del caribe colombiano (Costeño).
Usa jerga colombiana costeña (ej: "No joda", "Eche", "Cule", "Pilas", "Sapo", "Frio").
Sé gracioso, sarcástico y con "mamadera de gallo".

Situación:
{situation}

Genera un párrafo corto (máximo 2 frases) anunciando esto al pueblo al amanecer."""

_WIN_PROMPT = """Actúa como un narrador costeño eufórico.
El juego de Mafia terminó.
Ganador: {winner}.

Escribe una frase de celebración épica y graciosa."""


def build_night_prompt(dead: Optional[Player], saved: Optional[Player]) -> str:
    if dead is not None:
        situation = f"La mafia mató a {dead.name}."
    elif saved is not None:
        situation = f"La mafia intentó matar a {saved.name} pero el doctor lo salvó."
    else:
        situation = "La mafia no atacó a nadie esta noche. Nadie murió."
    return _NIGHT_PROMPT.format(situation=situation)


def build_win_prompt(side: Side) -> str:
    winner = "La Mafia (los malos)" if side == Side.MAFIA else "El Pueblo (los ciudadanos)"
    return _WIN_PROMPT.format(winner=winner)


class Narrator:
    """
    Single-shot Gemini narration with deterministic fallbacks.

    `client` may be injected (tests or an alternative provider exposing
    `client.aio.models.generate_content`). Otherwise one is created lazily the
    first time a call is made with GEMINI_API_KEY set.
    """

    def __init__(self, client: Optional[Any] = None, timeout: Optional[float] = None):
        self._client = client
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else settings.narration_timeout_seconds

    def _get_client(self) -> Optional[Any]:
        if self._client is None and settings.gemini_api_key:
            self._client = genai.Client(api_key=settings.gemini_api_key)
        return self._client

    async def _generate(self, prompt: str, tag: str) -> Optional[str]:
        """Return stripped text from one generate_content call, or None on any failure."""
        client = self._get_client()
        if client is None:
            logger.debug("[narrator] GEMINI_API_KEY not set, %s uses fallback", tag)
            return None

        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=settings.narrator_model,
                    contents=prompt,
                    config=types.GenerateContentConfig(
                        temperature=settings.narration_temperature,
                        max_output_tokens=200,
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("[narrator] %s timed out after %.1fs, using fallback", tag, self.timeout)
            return None
        except Exception as exc:
            logger.error("[narrator] Gemini call failed for %s: %s", tag, exc)
            return None

        text = (getattr(response, "text", None) or "").strip()
        if not text:
            logger.warning("[narrator] %s came back empty, using fallback", tag)
            return None
        return text

    async def narrate_night(self, dead: Optional[Player], saved: Optional[Player]) -> str:
        text = await self._generate(build_night_prompt(dead, saved), "night")
        return text or fallback_night(dead, saved)

    async def narrate_win(self, side: Side) -> str:
        text = await self._generate(build_win_prompt(side), "win")
        return text or fallback_win(side)


# Module-level singleton, used by the game controller
narrator = Narrator()
