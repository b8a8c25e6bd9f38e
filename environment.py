# environment.py
import numpy as np
import logging
from collections import deque
from typing import Dict, List, Optional, Sequence
from config import config, ConfigurationError, SimulationConfig # Import the global config instance
from solarsystem import (
    Body, BodyHandle, BodyRole, MembershipChange, MembershipChangeEvent,
    OrbitalMechanics, OrbitParameters,
)
from reference_frame import ReferenceFrameCorrector, INCREMENTAL
from physics_utils import PhysicsError, DegenerateConfigurationError, DegenerateOrbitError, as_vector2, safe_divide


class SolarSystemEnvironment:
    """Owns the bodies of a star system and drives the physics core.

    Bodies live in a generation-checked registry: every body gets a
    `BodyHandle(index, generation)` when added, slots are reused after removal,
    and a reused slot gets a new generation so stale handles stop resolving.
    Iteration follows slot order, which keeps every tick deterministic.

    Responsibilities:
    -   Keeping at most one primary and feeding membership changes to the
        `ReferenceFrameCorrector`, deferring corrections while no primary exists.
    -   Advancing all bodies with `OrbitalMechanics.advance()` at the fixed
        `config.Physics.TIMESTEP_SECONDS`.
    -   Sampling per-body traces, solving osculating orbits on demand, and
        producing the periodic state listing.
    -   Optionally monitoring total energy drift (`config.Debug`).

    Attributes:
        orbital_mechanics (OrbitalMechanics): Integrator and orbit solver.
        frame_corrector (ReferenceFrameCorrector): Zero-momentum frame keeper.
        step_count (int): Physics ticks performed since the last reset.
        traces_enabled (bool): Whether `sample_traces()` records positions.
        initial_system_energy (Optional[float]): Energy at the last membership
            change, used as the drift baseline.
    """

    def __init__(self, sim_config: Optional[SimulationConfig] = None, discipline: Optional[str] = None):
        self.config = sim_config if sim_config is not None else config
        self.orbital_mechanics = OrbitalMechanics(self.config)
        self.frame_corrector = ReferenceFrameCorrector(
            discipline if discipline is not None else self.config.ReferenceFrame.DISCIPLINE
        )
        self._slots: List[Optional[Body]] = []
        self._generations: List[int] = []
        self._free_slots: List[int] = []
        self._primary_handle: Optional[BodyHandle] = None
        self._stashed_primary: Optional[Body] = None
        self.step_count = 0
        self.traces_enabled = bool(self.config.Traces.ENABLED_BY_DEFAULT)
        self.initial_system_energy: Optional[float] = None
        logging.info(f"SolarSystemEnvironment initialized with the {self.frame_corrector.discipline} frame discipline.")

    # --- Registry ---

    @property
    def bodies(self) -> List[Body]:
        """Live bodies in slot order."""
        return [body for body in self._slots if body is not None]

    @property
    def primary(self) -> Optional[Body]:
        if self._primary_handle is None:
            return None
        return self._slots[self._primary_handle.index]

    @property
    def secondaries(self) -> List[Body]:
        return [body for body in self.bodies if not body.is_primary]

    def get_body(self, handle: BodyHandle) -> Body:
        """Resolves a handle to its body.

        Raises:
            KeyError: If the handle is unknown or refers to a removed body.
        """
        if not (0 <= handle.index < len(self._slots)) or self._generations[handle.index] != handle.generation:
            raise KeyError(f"Stale or unknown body handle {handle}.")
        body = self._slots[handle.index]
        if body is None:
            raise KeyError(f"Stale or unknown body handle {handle}.")
        return body

    def find_body(self, name: str) -> Optional[Body]:
        for body in self.bodies:
            if body.name == name:
                return body
        return None

    def _allocate(self, body: Body) -> BodyHandle:
        if self._free_slots:
            index = self._free_slots.pop(0)
            self._generations[index] += 1
            self._slots[index] = body
        else:
            index = len(self._slots)
            self._slots.append(body)
            self._generations.append(0)
        body.handle = BodyHandle(index, self._generations[index])
        return body.handle

    def _release(self, handle: BodyHandle) -> Body:
        body = self.get_body(handle)
        self._slots[handle.index] = None
        self._free_slots.append(handle.index)
        self._free_slots.sort()
        body.handle = None
        return body

    def add_body(self, name: str, mass_kg: float, position: Sequence[float], velocity: Sequence[float],
                 role: BodyRole = BodyRole.SECONDARY) -> BodyHandle:
        """Adds a body and applies the matching frame correction.

        Adding a secondary reports an `ADDED` event to the corrector (or rebalances
        the primary under the recompute discipline). Adding the primary replays
        the corrections that were deferred while it was absent.

        Raises:
            DegenerateConfigurationError: If the mass is not positive, or a primary
                is added while one already exists.
            ValueError: If position or velocity are not 2D.
        """
        body = Body(name=name, mass_kg=mass_kg, position=as_vector2(position), velocity=as_vector2(velocity), role=role)
        return self.add_existing_body(body)

    def add_existing_body(self, body: Body) -> BodyHandle:
        """Registers an already constructed `Body`. See `add_body()`.

        The body's trace is re-bounded to this environment's `Traces.MAX_POINTS`.

        Raises:
            DegenerateConfigurationError: Also when the position or velocity is
                not finite.
        """
        if not (body.mass_kg > 0 and np.isfinite(body.mass_kg)):
            raise DegenerateConfigurationError(f"Body '{body.name}' has invalid mass {body.mass_kg}; masses must be positive.")
        if not (np.all(np.isfinite(body.position)) and np.all(np.isfinite(body.velocity))):
            raise DegenerateConfigurationError(
                f"Body '{body.name}' has a non-finite state: position={body.position.tolist()}, "
                f"velocity={body.velocity.tolist()}."
            )
        if body.handle is not None:
            raise DegenerateConfigurationError(f"Body '{body.name}' is already registered as {body.handle}.")
        if body.is_primary and self._primary_handle is not None:
            raise DegenerateConfigurationError(
                f"Cannot add primary '{body.name}': '{self.primary.name}' is already the primary."
            )

        body.trace = deque(body.trace, maxlen=self.config.Traces.MAX_POINTS)
        handle = self._allocate(body)
        if body.is_primary:
            self._primary_handle = handle
            self._correct_for_new_primary()
        else:
            self._correct_for_secondary(MembershipChange.ADDED, body)

        self._reset_energy_baseline()
        logging.info(f"Added {body.role.value} '{body.name}' as {handle}.")
        return handle

    def remove_body(self, handle: BodyHandle) -> Body:
        """Removes a body and applies the matching frame correction.

        Removing a secondary reports a `REMOVED` event carrying its current
        velocity. Removing the primary applies no correction.

        Raises:
            KeyError: If the handle is stale or unknown.
        """
        body = self._release(handle)
        if body.is_primary:
            self._primary_handle = None
        else:
            self._correct_for_secondary(MembershipChange.REMOVED, body)

        self._reset_energy_baseline()
        logging.info(f"Removed {body.role.value} '{body.name}'.")
        return body

    def _correct_for_secondary(self, kind: MembershipChange, body: Body):
        primary = self.primary
        if primary is None:
            logging.debug(f"No primary present; frame correction for '{body.name}' ({kind.value}) deferred.")
            return
        if self.frame_corrector.discipline == INCREMENTAL:
            self.frame_corrector.on_membership_change(primary, MembershipChangeEvent.for_body(kind, body))
        else:
            self.frame_corrector.rebalance(primary, self.secondaries)

    def _correct_for_new_primary(self):
        primary = self.primary
        if self.frame_corrector.discipline == INCREMENTAL:
            for secondary in self.secondaries:
                self.frame_corrector.on_membership_change(
                    primary, MembershipChangeEvent.for_body(MembershipChange.ADDED, secondary)
                )
        else:
            self.frame_corrector.rebalance(primary, self.secondaries)

    def set_primary_present(self, present: bool) -> Optional[BodyHandle]:
        """Toggles the primary in or out of the system.

        Removing keeps the body aside; restoring re-adds it with zero velocity so
        the deferred corrections put it back into the zero-momentum frame.

        Returns:
            The primary's handle when present, None otherwise.
        """
        if present:
            if self._primary_handle is not None:
                return self._primary_handle
            if self._stashed_primary is None:
                logging.warning("No primary to restore; call reset() or add a primary body first.")
                return None
            primary = self._stashed_primary
            self._stashed_primary = None
            primary.velocity = np.zeros(2, dtype=np.float64)
            return self.add_existing_body(primary)

        if self._primary_handle is None:
            return None
        self._stashed_primary = self.remove_body(self._primary_handle)
        return None

    def reset(self):
        """Clears the registry and builds the bodies of `config.SolarSystem.BODY_DATA`.

        The primary is created first so every secondary added afterwards feeds
        the frame correction directly.

        Raises:
            ConfigurationError: If `BODY_DATA` lacks the primary or required keys.
        """
        self._slots, self._generations, self._free_slots = [], [], []
        self._primary_handle = None
        self._stashed_primary = None
        self.step_count = 0

        system_cfg = self.config.SolarSystem
        try:
            primary_cfg = system_cfg.BODY_DATA[system_cfg.PRIMARY_NAME]
            self.add_body(system_cfg.PRIMARY_NAME, primary_cfg['mass_kg'], primary_cfg['position_m'],
                          primary_cfg['velocity_m_s'], role=BodyRole.PRIMARY)
            for name, body_cfg in system_cfg.BODY_DATA.items():
                if name == system_cfg.PRIMARY_NAME:
                    continue
                self.add_body(name, body_cfg['mass_kg'], body_cfg['position_m'], body_cfg['velocity_m_s'])
        except KeyError as e_key:
            logging.critical(f"Missing key during body creation: {e_key}. Check SolarSystem.BODY_DATA.", exc_info=True)
            raise ConfigurationError(f"Missing key in SolarSystem.BODY_DATA: {e_key}")
        except PhysicsError as e_phys:
            logging.critical(f"PhysicsError during body creation: {e_phys}", exc_info=True)
            raise

        logging.info(f"SolarSystemEnvironment reset with {len(self.bodies)} bodies.")

    # --- Simulation ---

    def _reset_energy_baseline(self):
        if not self.config.Debug.MONITOR_ENERGY_CONSERVATION:
            return
        bodies = self.bodies
        if len(bodies) < 2:
            self.initial_system_energy = None
            return
        try:
            self.initial_system_energy = self.orbital_mechanics.calculate_total_system_energy(
                bodies, self.config.Physics.GRAVITATIONAL_CONSTANT
            )
        except PhysicsError as pe_energy:
            logging.error(f"PhysicsError calculating system energy baseline: {pe_energy}", exc_info=True)
            self.initial_system_energy = None

    def step(self):
        """Advances all bodies by one physics tick.

        Raises:
            PhysicsError: If the integrator rejects the current state (coincident
                bodies, invalid masses). The state is left unchanged in that case.
        """
        bodies = self.bodies
        try:
            self.orbital_mechanics.advance(
                bodies, self.config.Physics.TIMESTEP_SECONDS, self.config.Physics.GRAVITATIONAL_CONSTANT
            )
        except PhysicsError as e_phys:
            logging.error(f"PhysicsError during integration in step {self.step_count}: {e_phys}", exc_info=True)
            raise

        self.step_count += 1

        if self.config.Debug.MONITOR_ENERGY_CONSERVATION and \
           self.step_count % self.config.Debug.ENERGY_CHECK_INTERVAL_STEPS == 0 and \
           self.initial_system_energy is not None:
            current_system_energy = self.orbital_mechanics.calculate_total_system_energy(
                bodies, self.config.Physics.GRAVITATIONAL_CONSTANT
            )
            energy_change = current_system_energy - self.initial_system_energy
            energy_change_percent = safe_divide(energy_change * 100.0, abs(self.initial_system_energy))
            logging.info(
                f"ENERGY CHECK (Step {self.step_count}): Current: {current_system_energy:.6e} J, "
                f"Initial: {self.initial_system_energy:.6e} J, Delta: {energy_change:.6e} J ({energy_change_percent:.6f}%)"
            )

    def set_traces_enabled(self, enabled: bool):
        """Turns trace recording on or off. Turning it off clears existing traces."""
        self.traces_enabled = bool(enabled)
        if not self.traces_enabled:
            for body in self.bodies:
                body.trace.clear()
        logging.info(f"Show traces: {self.traces_enabled}")

    def sample_traces(self):
        """Appends the current position of every body to its trace, if enabled."""
        if not self.traces_enabled:
            return
        for body in self.bodies:
            body.add_trace_point()

    def compute_orbits(self) -> Dict[BodyHandle, OrbitParameters]:
        """Solves the osculating orbit of every secondary around the primary.

        Secondaries on unbound or degenerate trajectories are skipped for this
        call and logged at debug level. Returns an empty dict without a primary.
        """
        primary = self.primary
        if primary is None:
            return {}

        mu = self.config.Physics.GRAVITATIONAL_CONSTANT * primary.mass_kg
        orbits: Dict[BodyHandle, OrbitParameters] = {}
        for secondary in self.secondaries:
            try:
                orbits[secondary.handle] = self.orbital_mechanics.solve_orbit(
                    secondary, primary, mu, self.config.Orbit.PARABOLIC_TOLERANCE
                )
            except (DegenerateOrbitError, DegenerateConfigurationError) as e_orbit:
                logging.debug(f"Skipping orbit of '{secondary.name}' in step {self.step_count}: {e_orbit}")
        return orbits

    def list_objects(self) -> List[str]:
        """One status line per body: position, distance from the origin and speed.

        The lines are also logged at info level, followed by a separator.
        """
        lines = []
        for body in self.bodies:
            lines.append(
                f"{body.name} ({body.position[0]:.4e}, {body.position[1]:.4e}) "
                f"[{np.linalg.norm(body.position):4.2e}] => ({np.linalg.norm(body.velocity):.4e})"
            )
        for line in lines:
            logging.info(line)
        logging.info("======")
        return lines
