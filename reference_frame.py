# reference_frame.py
import logging
from typing import Iterable, Optional

import numpy as np

from config import config, ConfigurationError, SUPPORTED_FRAME_DISCIPLINES
from physics_utils import PhysicsError, DegenerateConfigurationError
from solarsystem import Body, MembershipChange, MembershipChangeEvent

INCREMENTAL = "incremental"
RECOMPUTE = "recompute"


class ReferenceFrameCorrector:
    """Keeps the simulation frame at (approximately) zero total momentum.

    The primary absorbs the momentum carried by the secondaries: its velocity is
    set so that `m_p * v_p + sum(m_i * v_i) == 0`. Two disciplines exist:

    -   **incremental**: every membership change is reported as a
        `MembershipChangeEvent` and the primary recoils by `m * v / m_p`
        (against the body when it is added, undoing that when it is removed).
    -   **recompute**: the primary's velocity is rebuilt from scratch from the
        momentum of all secondaries currently present.

    A corrector is bound to one discipline for its whole life. Applying both to
    the same primary double-counts the secondaries' momentum, so the operation
    of the other discipline raises `PhysicsError`.

    Attributes:
        discipline (str): Either "incremental" or "recompute".
    """

    def __init__(self, discipline: Optional[str] = None):
        if discipline is None:
            discipline = config.ReferenceFrame.DISCIPLINE
        if discipline not in SUPPORTED_FRAME_DISCIPLINES:
            raise ConfigurationError(
                f"Unknown reference frame discipline {discipline!r}; expected one of {SUPPORTED_FRAME_DISCIPLINES}."
            )
        self.discipline = discipline

    def _require(self, discipline: str):
        if self.discipline != discipline:
            raise PhysicsError(
                f"Corrector uses the {self.discipline!r} discipline; {discipline!r} corrections are not allowed."
            )

    @staticmethod
    def _require_primary(primary: Optional[Body]):
        if primary is None:
            raise DegenerateConfigurationError("Frame correction requested while no primary body exists.")
        if primary.mass_kg <= 0:
            raise DegenerateConfigurationError(
                f"Primary '{primary.name}' has invalid mass {primary.mass_kg}; masses must be positive."
            )

    def on_membership_change(self, primary: Optional[Body], event: MembershipChangeEvent):
        """Applies one membership change to the primary's velocity, in place.

        `adjustment = event.mass * event.velocity / primary.mass` is subtracted
        for `ADDED` and added back for `REMOVED`, so an add followed by a remove
        of the same mass and velocity restores the original velocity.

        Raises:
            DegenerateConfigurationError: If there is no primary or its mass is
                not positive.
            PhysicsError: If this corrector uses the recompute discipline.
        """
        self._require(INCREMENTAL)
        self._require_primary(primary)

        adjustment = event.mass_kg * np.asarray(event.velocity, dtype=np.float64) / primary.mass_kg
        sign = -1.0 if event.kind is MembershipChange.ADDED else 1.0
        primary.velocity = primary.velocity + sign * adjustment
        logging.debug(
            f"Frame correction ({event.kind.value}, {event.mass_kg:.4e} kg): "
            f"primary '{primary.name}' velocity now {primary.velocity.tolist()} m/s"
        )

    @staticmethod
    def zero_momentum_velocity(primary_mass_kg: float, secondaries: Iterable[Body]) -> np.ndarray:
        """Velocity that cancels the secondaries' momentum: `-(sum m_i v_i) / m_p`."""
        if primary_mass_kg <= 0:
            raise DegenerateConfigurationError(f"Primary mass must be positive, got {primary_mass_kg}.")
        momentum = np.zeros(2, dtype=np.float64)
        for body in secondaries:
            momentum += body.mass_kg * body.velocity
        return -momentum / primary_mass_kg

    def rebalance(self, primary: Optional[Body], secondaries: Iterable[Body]):
        """Sets the primary's velocity from the momentum of all `secondaries`.

        Raises:
            DegenerateConfigurationError: If there is no primary or its mass is
                not positive.
            PhysicsError: If this corrector uses the incremental discipline.
        """
        self._require(RECOMPUTE)
        self._require_primary(primary)
        primary.velocity = self.zero_momentum_velocity(primary.mass_kg, secondaries)
        logging.debug(f"Frame rebalanced: primary '{primary.name}' velocity now {primary.velocity.tolist()} m/s")
