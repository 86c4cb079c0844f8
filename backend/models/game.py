from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Tuple
from enum import Enum
from datetime import datetime, timezone
import uuid


def _utcnow() -> datetime:
    """Timezone-aware UTC datetime (replaces deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


def new_player_id() -> str:
    return str(uuid.uuid4())


class Side(str, Enum):
    MAFIA = "mafia"
    TOWN = "town"


class Role(str, Enum):
    MAFIA = "mafia"
    DOCTOR = "doctor"
    DETECTIVE = "detective"
    CITIZEN = "citizen"

    @property
    def side(self) -> Side:
        return Side.MAFIA if self is Role.MAFIA else Side.TOWN


class Phase(str, Enum):
    SETUP = "setup"
    ROLE_REVEAL_INTERSTITIAL = "role_reveal_interstitial"
    ROLE_REVEAL = "role_reveal"
    NIGHT_INTRO = "night_intro"
    NIGHT_MAFIA = "night_mafia"
    NIGHT_DOCTOR = "night_doctor"
    NIGHT_DETECTIVE = "night_detective"
    NIGHT_DETECTIVE_RESULT = "night_detective_result"
    DAY_ANNOUNCEMENT = "day_announcement"
    DAY_DISCUSSION = "day_discussion"
    DAY_VOTE = "day_vote"
    DAY_ELIMINATION_REVEAL = "day_elimination_reveal"
    GAME_OVER = "game_over"


NIGHT_ACTION_PHASES = (Phase.NIGHT_MAFIA, Phase.NIGHT_DOCTOR, Phase.NIGHT_DETECTIVE)


class RolePolicy(str, Enum):
    EXPLICIT = "explicit"          # host picks every count
    SIZE_DERIVED = "size_derived"  # counts follow roster size (legacy table)


class WinOutcome(str, Enum):
    MAFIA_WINS = "mafia_wins"
    TOWN_WINS = "town_wins"
    ONGOING = "ongoing"

    @property
    def side(self) -> Optional[Side]:
        if self is WinOutcome.MAFIA_WINS:
            return Side.MAFIA
        if self is WinOutcome.TOWN_WINS:
            return Side.TOWN
        return None


# ── Cosmetic and narrative constants ──────────────────────────────────────────

AVATARS: Tuple[str, ...] = (
    "😎", "🤠", "🥳", "👻", "👽", "🤖", "🐯", "🐙", "🥑", "🍹", "🌴", "🌞",
)

ROLE_LABELS: Dict[Role, str] = {
    Role.MAFIA: "MAFIA",
    Role.DOCTOR: "DOCTOR",
    Role.DETECTIVE: "DETECTIVE",
    Role.CITIZEN: "CIUDADANO",
}

ROLE_DESCRIPTIONS: Dict[Role, str] = {
    Role.MAFIA: "Eres la MAFIA. Tu misión es tumbarte a los ciudadanos sin que te pillen. ¡Shhh!",
    Role.DOCTOR: "Eres el DOCTOR. Tienes el poder de salvar una vida cada noche. ¡Pilas!",
    Role.DETECTIVE: "Eres el DETECTIVE. Cada noche puedes averiguar quién es quién. Ojo clínico.",
    Role.CITIZEN: "Eres un CIUDADANO de bien. Tu misión es sobrevivir y descubrir a los sapos.",
}

# Host-facing line shown on each phase screen
PHASE_PROMPTS: Dict[Phase, str] = {
    Phase.SETUP: "A ver, ¿quién es el sapo infiltrado? Vamos a ver quién anda rarito por aquí.",
    Phase.ROLE_REVEAL_INTERSTITIAL: "Pásale el celular al siguiente jugador. ¡Nadie más mire!",
    Phase.ROLE_REVEAL: "Mira tu rol y no pongas cara de nada.",
    Phase.NIGHT_INTRO: "Bueno mi gente, cayó la noche… pónganse serios que por ahí anda la mafia haciendo de las suyas.",
    Phase.NIGHT_MAFIA: "Mafia, hagan lo suyo pero calladitos, que aquí nadie vio nada. ¿A quién nos vamos a 'bajar' hoy?",
    Phase.NIGHT_DOCTOR: "Doctor, ¿dónde estás? Alguien se va a enfermar feo, ¿a quién vas a salvar?",
    Phase.NIGHT_DETECTIVE: "Detective, ponte las gafas. ¿Quién te huele mal? Señala al sospechoso.",
    Phase.NIGHT_DETECTIVE_RESULT: "Detective, mira bien y que nadie más vea.",
    Phase.DAY_ANNOUNCEMENT: "¡Buenos días mi gente bella! Amaneció la cosa caliente...",
    Phase.DAY_DISCUSSION: "Hablen ahora o callen para siempre. ¿Quién tiene cara de culpable?",
    Phase.DAY_VOTE: "Bueno, se acabó la cháchara. ¿Quién se va? ¡A votar se dijo!",
    Phase.DAY_ELIMINATION_REVEAL: "El pueblo ha hablado.",
    Phase.GAME_OVER: "¡Se acabó esta vaina!",
}

WIN_LINES: Dict[Side, str] = {
    Side.MAFIA: "¡Ganó la MAFIA! Se los bailaron a todos sabroso. 🕺💃",
    Side.TOWN: "¡Ganó el PUEBLO! Sacaron a todas las ratas. ¡A celebrar con fría! 🍻",
}


# ── Game records (immutable snapshots) ────────────────────────────────────────

class Player(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_player_id)
    name: str
    role: Role
    alive: bool = True
    avatar: str = ""

    @property
    def is_mafia(self) -> bool:
        return self.role is Role.MAFIA

    def eliminated(self) -> "Player":
        return self.model_copy(update={"alive": False})


class NightActions(BaseModel):
    model_config = ConfigDict(frozen=True)

    mafia_target_id: Optional[str] = None
    doctor_saved_id: Optional[str] = None
    detective_investigated_id: Optional[str] = None


class GameEvent(BaseModel):
    """Public timeline entry (night outcomes, investigations, eliminations)."""
    model_config = ConfigDict(frozen=True)

    type: str
    round: int
    phase: Phase
    target_id: Optional[str] = None
    target_name: Optional[str] = None
    data: Dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=_utcnow)


class GameState(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase: Phase = Phase.SETUP
    players: Tuple[Player, ...] = ()
    current_turn_index: int = 0
    night_actions: NightActions = NightActions()
    message: str = ""
    winner: Optional[Side] = None
    round: int = 0
    vote_target_id: Optional[str] = None
    events: Tuple[GameEvent, ...] = ()

    @property
    def alive_players(self) -> List[Player]:
        return [p for p in self.players if p.alive]

    @property
    def current_player(self) -> Optional[Player]:
        if 0 <= self.current_turn_index < len(self.players):
            return self.players[self.current_turn_index]
        return None

    def get_player(self, player_id: Optional[str]) -> Optional[Player]:
        if player_id is None:
            return None
        return next((p for p in self.players if p.id == player_id), None)

    def has_living(self, role: Role) -> bool:
        return any(p.alive and p.role is role for p in self.players)


class NightOutcome(BaseModel):
    """Result of resolving one night: the new roster plus who died or was saved."""
    model_config = ConfigDict(frozen=True)

    players: Tuple[Player, ...]
    killed: Optional[Player] = None
    saved: Optional[Player] = None


class RoleConfig(BaseModel):
    mafia_count: int = Field(default=1, ge=0)
    doctor_count: int = Field(default=1, ge=0)
    detective_count: int = Field(default=1, ge=0)
    policy: RolePolicy = RolePolicy.EXPLICIT

    @property
    def special_count(self) -> int:
        return self.mafia_count + self.doctor_count + self.detective_count


# ── Presentation snapshot ─────────────────────────────────────────────────────

class DetectiveResult(BaseModel):
    player: Player
    is_mafia: bool


class SessionSnapshot(BaseModel):
    """Read-only view of one session, sent to every screen after each commit."""
    game_id: str
    names: List[str]
    role_config: RoleConfig
    loading: Optional[str] = None
    state: GameState
    current_player: Optional[Player] = None
    phase_prompt: str = ""
    role_description: Optional[str] = None
    detective_result: Optional[DetectiveResult] = None
    living_targets: List[Player] = []


# ── HTTP request/response models ──────────────────────────────────────────────

class AddNameRequest(BaseModel):
    name: str


class TargetRequest(BaseModel):
    player_id: str


class ResetRequest(BaseModel):
    keep_roster: bool = True


class SetupSummary(BaseModel):
    player_count: int
    mafia_count: int
    doctor_count: int
    detective_count: int
    citizen_count: int
    policy: RolePolicy
    can_start: bool
    problem: Optional[str] = None


# ── Host panel ────────────────────────────────────────────────────────────────

class HostPlayer(BaseModel):
    id: str
    name: str
    avatar: str
    role: Role
    role_label: str
    alive: bool


class HostView(BaseModel):
    """Moderator's cheat sheet: every role and who is still in, mid-game."""
    game_id: str
    phase: Phase
    round: int
    players: List[HostPlayer]
    alive_mafia: int
    alive_town: int
