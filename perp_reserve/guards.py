"""
guards.py - Pause gate and caller authorization

Checked by PerpetualTranche before any mutating entry point runs; the
redemption and rollover functions themselves never consult it.
"""

from typing import Optional

from .core import Paused, UnauthorizedCall


class ReserveGuard:
    """
    Process-wide pause switch plus an optional dedicated roller.

    Args:
        keeper: Only account allowed to pause and unpause
        authorized_roller: If set, the only account allowed to roll over
    """

    def __init__(self, keeper: str, authorized_roller: Optional[str] = None):
        self.keeper = keeper
        self.authorized_roller = authorized_roller
        self.paused = False

    def pause(self, caller: str) -> None:
        self._check_keeper(caller)
        self.paused = True

    def unpause(self, caller: str) -> None:
        self._check_keeper(caller)
        self.paused = False

    def check_not_paused(self) -> None:
        if self.paused:
            raise Paused("Pausable: paused")

    def check_roller(self, caller: str) -> None:
        """Raise UnauthorizedCall unless caller may roll over."""
        if self.authorized_roller is not None and caller != self.authorized_roller:
            raise UnauthorizedCall(f"{caller} is not the authorized roller")

    def _check_keeper(self, caller: str) -> None:
        if caller != self.keeper:
            raise UnauthorizedCall(f"{caller} is not the keeper")

    def __repr__(self):
        return (f"ReserveGuard(keeper={self.keeper}, roller={self.authorized_roller}, "
                f"paused={self.paused})")
