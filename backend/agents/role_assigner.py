"""
Role Assignment: deterministic-by-seed role shuffling for a pass-the-phone game.

Responsibilities:
- Resolve role counts from the host's configuration (explicit counts) or from
  the roster size (legacy size-derived table)
- Validate the setup before the game starts
- Shuffle roles and avatars independently and deal them to names in input order

Pure: nothing here touches a session. The game controller validates, then assigns.
"""
import logging
import random
from typing import List, Optional, Sequence, Tuple

from config import settings
from models.game import (
    AVATARS, Player, Role, RoleConfig, RolePolicy, SetupSummary, new_player_id,
)
from agents.game_master import SetupError

logger = logging.getLogger(__name__)


class RoleAssigner:
    """
    Deals roles to a roster.

    With RolePolicy.EXPLICIT the configured counts are used as-is.
    With RolePolicy.SIZE_DERIVED (or no config at all) counts follow the table:
      mafia     1 below 6 players, 2 for 6–8, 3 from 9 up
      doctor    always 1
      detective 1 from 5 players up
    """

    @property
    def min_players(self) -> int:
        return settings.min_players

    @staticmethod
    def derived_counts(n_players: int) -> Tuple[int, int, int]:
        if n_players < 6:
            mafia = 1
        elif n_players <= 8:
            mafia = 2
        else:
            mafia = 3
        detective = 1 if n_players >= 5 else 0
        return mafia, 1, detective

    def resolve_counts(
        self, n_players: int, config: Optional[RoleConfig]
    ) -> Tuple[int, int, int]:
        """Return the effective (mafia, doctor, detective) counts."""
        if config is None or config.policy == RolePolicy.SIZE_DERIVED:
            return self.derived_counts(n_players)
        return config.mafia_count, config.doctor_count, config.detective_count

    def check(self, names: Sequence[str], config: Optional[RoleConfig]) -> Optional[str]:
        """Return the user-facing problem with this setup, or None if it can start."""
        n_players = len(names)
        mafia, doctor, detective = self.resolve_counts(n_players, config)
        special = mafia + doctor + detective

        if n_players < self.min_players:
            return f"¡Eche! Mínimo {self.min_players} pelagatos para jugar esto."
        if mafia < 1:
            return "¡Ajá! ¿Y sin mafia cómo jugamos? Pon al menos un mafioso."
        if special > n_players:
            return (
                f"¡No cuadran las cuentas! Tienes {n_players} jugadores "
                f"pero asignaste {special} roles especiales."
            )
        return None

    def validate(self, names: Sequence[str], config: Optional[RoleConfig]) -> None:
        """Raise SetupError when the game cannot start with these names and counts."""
        problem = self.check(names, config)
        if problem:
            raise SetupError(problem)

    def summary(self, names: Sequence[str], config: Optional[RoleConfig]) -> SetupSummary:
        """Role breakdown shown on the setup screen before the host starts."""
        n_players = len(names)
        mafia, doctor, detective = self.resolve_counts(n_players, config)
        problem = self.check(names, config)
        return SetupSummary(
            player_count=n_players,
            mafia_count=mafia,
            doctor_count=doctor,
            detective_count=detective,
            citizen_count=max(n_players - mafia - doctor - detective, 0),
            policy=config.policy if config else RolePolicy.SIZE_DERIVED,
            can_start=problem is None,
            problem=problem,
        )

    def assign_roles(
        self,
        names: Sequence[str],
        config: Optional[RoleConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> Tuple[Player, ...]:
        """
        Build a fresh roster.

        Roles: mafia + doctor + detective labels padded with citizens up to
        len(names), shuffled uniformly. Avatars: the palette shuffled on its
        own and cycled when the roster is bigger than the palette. Names keep
        their input order; every player gets a new id and starts alive.

        Preconditions are the caller's job (see validate()).
        """
        rng = rng or random.Random()
        n_players = len(names)
        mafia, doctor, detective = self.resolve_counts(n_players, config)

        roles: List[Role] = (
            [Role.MAFIA] * mafia + [Role.DOCTOR] * doctor + [Role.DETECTIVE] * detective
        )
        roles.extend([Role.CITIZEN] * (n_players - len(roles)))
        rng.shuffle(roles)

        avatars = list(AVATARS)
        rng.shuffle(avatars)

        players = tuple(
            Player(
                id=new_player_id(),
                name=name,
                role=roles[i],
                alive=True,
                avatar=avatars[i % len(avatars)],
            )
            for i, name in enumerate(names)
        )

        logger.info(
            "Roles dealt to %d players (mafia=%d, doctor=%d, detective=%d)",
            n_players, mafia, doctor, detective,
        )
        logger.debug("Deal: %s", [(p.name, p.role.value) for p in players])
        return players


# Module-level singleton
role_assigner = RoleAssigner()
