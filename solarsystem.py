# solarsystem.py
import numpy as np
import math
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, NamedTuple, Optional, Sequence, Tuple
from config import config # Import the global config instance
from physics_utils import (
    DegenerateConfigurationError, DegenerateOrbitError, angle_from_reference_axis,
    cross_2d, cross_vector_scalar, unit_vector_from_angle,
)


class BodyRole(Enum):
    """Role of a body in the system. Exactly one primary may exist at a time."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


class BodyHandle(NamedTuple):
    """Stable identity issued by `SolarSystemEnvironment`.

    `index` is the registry slot, `generation` is bumped every time the slot is
    reused so stale handles never resolve to a newer body.
    """
    index: int
    generation: int


@dataclass(eq=False)
class Body:
    name: str
    mass_kg: float
    position: np.ndarray  # [x, y] in meters, simulation frame
    velocity: np.ndarray  # [vx, vy] in meters per second
    role: BodyRole = BodyRole.SECONDARY
    handle: Optional[BodyHandle] = None  # Assigned by the registry

    # Store path for drawing traces; never read by the physics
    trace: Deque[np.ndarray] = field(default_factory=lambda: deque(maxlen=config.Traces.MAX_POINTS), repr=False)

    def __post_init__(self):
        if not isinstance(self.position, np.ndarray) or self.position.dtype != np.float64:
            self.position = np.array(self.position, dtype=np.float64)
        if not isinstance(self.velocity, np.ndarray) or self.velocity.dtype != np.float64:
            self.velocity = np.array(self.velocity, dtype=np.float64)
        self.mass_kg = float(self.mass_kg)

    @property
    def is_primary(self) -> bool:
        return self.role is BodyRole.PRIMARY

    def add_trace_point(self):
        """Adds the current position to the trace, respecting the trace length."""
        self.trace.append(self.position.copy()) # Store a copy


class SnapshotEntry(NamedTuple):
    identity: object  # BodyHandle, or id() for bodies outside a registry
    name: str
    position: np.ndarray
    mass_kg: float


def body_identity(body: Body) -> object:
    """Identity used to skip self-interaction: the handle, else the object id."""
    return body.handle if body.handle is not None else id(body)


def take_system_snapshot(bodies: Sequence[Body]) -> Tuple[SnapshotEntry, ...]:
    """Immutable, ordered copy of (identity, name, position, mass) for every body.

    Positions are copied and frozen, so mutating a body after the snapshot is
    taken cannot change what the snapshot reports.
    """
    entries = []
    for body in bodies:
        frozen_position = body.position.copy()
        frozen_position.setflags(write=False)
        entries.append(SnapshotEntry(body_identity(body), body.name, frozen_position, body.mass_kg))
    return tuple(entries)


@dataclass(frozen=True, eq=False)
class OrbitParameters:
    """Osculating two-body ellipse of a secondary around the primary.

    Derived and ephemeral: recomputed on every request from the current
    positions, velocities and masses, never stored as authoritative state.
    """
    semi_major_axis: float
    semi_minor_axis: float
    eccentricity_vector: np.ndarray
    eccentricity: float
    ellipse_center: np.ndarray
    orientation_angle: float  # Radians from the +X axis to the eccentricity vector
    barycenter: np.ndarray
    empty_focus: np.ndarray


class MembershipChange(Enum):
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True, eq=False)
class MembershipChangeEvent:
    """Mass and velocity of the body whose presence just changed."""
    kind: MembershipChange
    mass_kg: float
    velocity: np.ndarray

    @classmethod
    def for_body(cls, kind: MembershipChange, body: Body) -> "MembershipChangeEvent":
        return cls(kind=kind, mass_kg=body.mass_kg, velocity=body.velocity.copy())


class OrbitalMechanics:
    """Gravitational integrator and osculating-orbit solver.

    Keeps no body state between calls; the per-tick snapshot is local to
    `advance`. Defaults (G, parabolic tolerance, debug logging) come from the
    `SimulationConfig` it was built with, the global `config` if none was given.
    """

    def __init__(self, sim_config=None):
        self.config = sim_config if sim_config is not None else config

    def validate_bodies(self, bodies: Sequence[Body], dt_seconds: float):
        """Checks the integrator preconditions.

        Raises:
            DegenerateConfigurationError: If `dt_seconds` is not positive, or a body
                has a non-positive or non-finite mass, or a non-finite position
                or velocity.
        """
        if not (dt_seconds > 0 and math.isfinite(dt_seconds)):
            raise DegenerateConfigurationError(f"Time step must be positive and finite, got {dt_seconds}.")
        for body in bodies:
            if not (body.mass_kg > 0 and math.isfinite(body.mass_kg)):
                raise DegenerateConfigurationError(
                    f"Body '{body.name}' has invalid mass {body.mass_kg}; masses must be positive."
                )
            if not (np.all(np.isfinite(body.position)) and np.all(np.isfinite(body.velocity))):
                raise DegenerateConfigurationError(
                    f"Body '{body.name}' has a non-finite state: position={body.position.tolist()}, "
                    f"velocity={body.velocity.tolist()}."
                )

    def _reject_coincident(self, snapshot: Sequence[SnapshotEntry]):
        # Same squared distance the update pass divides by, so underflow to 0 is caught too.
        for i, first in enumerate(snapshot):
            for second in snapshot[i + 1:]:
                dx = second.position[0] - first.position[0]
                dy = second.position[1] - first.position[1]
                if float(dx * dx + dy * dy) == 0.0:
                    raise DegenerateConfigurationError(
                        f"Bodies '{first.name}' and '{second.name}' are coincident; gravity is undefined at zero separation."
                    )

    def _velocity_delta(self, body: Body, snapshot: Sequence[SnapshotEntry],
                        dt_seconds: float, gravitational_constant: float) -> np.ndarray:
        identity = body_identity(body)
        velocity_delta = np.zeros(2, dtype=np.float64)

        for other in snapshot:
            if other.identity == identity:
                continue

            offset = other.position - body.position # From body toward other
            distance_sq = float(offset[0] * offset[0] + offset[1] * offset[1])

            acceleration = gravitational_constant * other.mass_kg / distance_sq
            angle = angle_from_reference_axis(offset)
            velocity_delta += acceleration * dt_seconds * unit_vector_from_angle(angle)

        return velocity_delta

    def advance(self, bodies: Sequence[Body], dt_seconds: float, gravitational_constant: Optional[float] = None):
        """
        Advances every body by one fixed step using pairwise Newtonian gravity.

        A snapshot of all (identity, position, mass) is taken before anything is
        mutated, so every pairwise acceleration in this tick is computed from one
        consistent past state regardless of iteration order. For each body the
        velocity change from all other bodies is accumulated first, then applied,
        then the position is moved with the updated velocity (semi-implicit Euler):

            dv = sum_j G * m_j / |r_j - r_i|^2 * dt * u(angle(+X, r_j - r_i))
            v_i <- v_i + dv
            x_i <- x_i + v_i * dt

        Each ordered pair is evaluated independently; the symmetry of the force
        is not exploited.

        Args:
            bodies: Bodies to integrate (modified in place).
            dt_seconds: Time step in seconds (> 0).
            gravitational_constant: G in m^3 kg^-1 s^-2. Defaults to
                `config.Physics.GRAVITATIONAL_CONSTANT`.

        Raises:
            DegenerateConfigurationError: On a non-positive time step or mass, a
                non-finite position or velocity, two distinct bodies at zero
                separation, or an acceleration that overflows. No body is modified
                when this is raised.
        """
        if gravitational_constant is None:
            gravitational_constant = self.config.Physics.GRAVITATIONAL_CONSTANT
        self.validate_bodies(bodies, dt_seconds)

        snapshot = take_system_snapshot(bodies)
        self._reject_coincident(snapshot)

        # Every delta depends only on the snapshot, so all are computed before the first body moves.
        velocity_deltas = [self._velocity_delta(body, snapshot, dt_seconds, gravitational_constant) for body in bodies]
        for body, velocity_delta in zip(bodies, velocity_deltas):
            if not np.all(np.isfinite(velocity_delta)):
                raise DegenerateConfigurationError(
                    f"Gravity on '{body.name}' overflowed; bodies are too close for a finite step."
                )

        for body, velocity_delta in zip(bodies, velocity_deltas):
            body.velocity = body.velocity + velocity_delta
            body.position = body.position + body.velocity * dt_seconds

            if self.config.Debug.ORBITAL_MECHANICS:
                logging.debug(f"ADVANCE DBG: {body.name} Pos={body.position.tolist()} m, Vel={body.velocity.tolist()} m/s")

    def solve_orbit(self, secondary: Body, primary: Body,
                    standard_gravitational_parameter: Optional[float] = None,
                    parabolic_tolerance: Optional[float] = None) -> OrbitParameters:
        """
        Derives the instantaneous two-body ellipse of `secondary` around `primary`.

        Works from the barycenter of the pair and the velocity relative to the
        primary: vis-viva gives the semi-major axis, the eccentricity vector comes
        from the specific angular momentum, and the ellipse is placed from the
        empty focus.

        Args:
            secondary: The orbiting body.
            primary: The dominant body.
            standard_gravitational_parameter: mu = G * primary mass. Computed from
                `config.Physics.GRAVITATIONAL_CONSTANT` when omitted.
            parabolic_tolerance: Relative band around the parabolic vis-viva
                denominator treated as degenerate. Defaults to
                `config.Orbit.PARABOLIC_TOLERANCE`.

        Returns:
            OrbitParameters for the current state. Pure; nothing is mutated.

        Raises:
            DegenerateConfigurationError: If mu is not positive, the masses are not
                positive, or the secondary sits on the barycenter.
            DegenerateOrbitError: If the relative motion is near-parabolic,
                hyperbolic, or otherwise has eccentricity >= 1.
        """
        mu = standard_gravitational_parameter
        if mu is None:
            mu = self.config.Physics.GRAVITATIONAL_CONSTANT * primary.mass_kg
        if parabolic_tolerance is None:
            parabolic_tolerance = self.config.Orbit.PARABOLIC_TOLERANCE
        if not (mu > 0 and math.isfinite(mu)):
            raise DegenerateConfigurationError(f"Standard gravitational parameter must be positive, got {mu}.")
        if primary.mass_kg <= 0 or secondary.mass_kg <= 0:
            raise DegenerateConfigurationError(
                f"Orbit of '{secondary.name}' around '{primary.name}' needs positive masses."
            )

        # 1. Barycenter of the pair
        distance_vector = secondary.position - primary.position
        barycenter = primary.position + distance_vector * (secondary.mass_kg / (primary.mass_kg + secondary.mass_kg))

        # 2. Relative kinematics
        position_vector = secondary.position - barycenter
        velocity_vector = secondary.velocity - primary.velocity
        distance = float(np.linalg.norm(position_vector))
        speed_sq = float(np.dot(velocity_vector, velocity_vector))
        if distance == 0.0:
            raise DegenerateConfigurationError(
                f"'{secondary.name}' coincides with the barycenter; its orbit is undefined."
            )

        # 3. Vis-viva inversion
        denominator = 2.0 * mu - distance * speed_sq
        if abs(denominator) <= parabolic_tolerance * 2.0 * mu:
            raise DegenerateOrbitError(f"Orbit of '{secondary.name}' is near-parabolic; semi-major axis diverges.")
        semi_major_axis = mu * distance / denominator
        if semi_major_axis < 0:
            raise DegenerateOrbitError(
                f"Orbit of '{secondary.name}' is hyperbolic (semi-major axis {semi_major_axis:.4e} m)."
            )

        # 4. Angular momentum and eccentricity
        angular_momentum = cross_2d(position_vector, velocity_vector)
        eccentricity_vector = position_vector / distance - cross_vector_scalar(velocity_vector, angular_momentum) / mu
        eccentricity = float(np.linalg.norm(eccentricity_vector))
        if eccentricity >= 1.0:
            raise DegenerateOrbitError(f"Orbit of '{secondary.name}' has eccentricity {eccentricity:.6f} >= 1.")

        # 5. Shape
        semi_minor_axis = semi_major_axis * math.sqrt(1.0 - eccentricity * eccentricity)

        # 6. Placement
        empty_focus = eccentricity_vector * 2.0 * semi_major_axis
        ellipse_center = (empty_focus - barycenter) / 2.0
        orientation_angle = angle_from_reference_axis(eccentricity_vector)

        return OrbitParameters(
            semi_major_axis=semi_major_axis,
            semi_minor_axis=semi_minor_axis,
            eccentricity_vector=eccentricity_vector,
            eccentricity=eccentricity,
            ellipse_center=ellipse_center,
            orientation_angle=orientation_angle,
            barycenter=barycenter,
            empty_focus=empty_focus,
        )

    def calculate_total_momentum(self, bodies: Sequence[Body]) -> np.ndarray:
        """Total linear momentum sum(m_i * v_i) in kg*m/s."""
        total = np.zeros(2, dtype=np.float64)
        for body in bodies:
            total += body.mass_kg * body.velocity
        return total

    def calculate_total_system_energy(self, bodies: List[Body], gravitational_constant: Optional[float] = None) -> float:
        """
        Calculates the total mechanical energy (kinetic + potential) of the system.

        Energy is returned in Joules. Pairs at zero separation are rejected
        rather than skipped, matching the integrator's preconditions.

        Raises:
            DegenerateConfigurationError: If two bodies coincide.
        """
        if gravitational_constant is None:
            gravitational_constant = self.config.Physics.GRAVITATIONAL_CONSTANT

        total_kinetic_energy = 0.0
        total_potential_energy = 0.0

        for body in bodies:
            total_kinetic_energy += 0.5 * body.mass_kg * float(np.dot(body.velocity, body.velocity))

        # Potential energy for each unique pair of bodies
        num_bodies = len(bodies)
        for i in range(num_bodies):
            for j in range(i + 1, num_bodies):
                body1 = bodies[i]
                body2 = bodies[j]
                distance = float(np.linalg.norm(body2.position - body1.position))
                if distance == 0.0:
                    raise DegenerateConfigurationError(
                        f"Bodies '{body1.name}' and '{body2.name}' coincide; potential energy is unbounded."
                    )
                total_potential_energy += -gravitational_constant * body1.mass_kg * body2.mass_kg / distance

        return total_kinetic_energy + total_potential_energy
