# config.py
import logging

# Configure basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(module)s - %(message)s')

# Fundamental Physical Constants (used across different config sections)
GRAVITATIONAL_CONSTANT_M3_KG_S2 = 6.67e-11  # G in m^3 kg^-1 s^-2, as used by the reference system
SECONDS_PER_HOUR = 3600.0

SUPPORTED_FRAME_DISCIPLINES = ("incremental", "recompute")

class ConfigurationError(Exception):
    """Custom exception for simulation configuration errors.

    Raised by `SimulationConfig.validate()` and by the environment when settings
    are invalid, inconsistent, or missing, which would prevent the simulation
    from running correctly.

    Attributes:
        message (str): A human-readable explanation of the configuration error.
                       This is the first argument passed to the exception constructor.
    """
    pass

class SimulationConfig:
    """Centralized, hierarchical configuration for the star system simulation.

    Parameters live in nested static classes (`SimulationConfig.Physics`,
    `SimulationConfig.Sampling`, `SimulationConfig.SolarSystem`, ...). An instance
    named `config` is created at the end of this module, making it globally
    available via `from config import config`.

    The constructor calls `validate()`, which raises `ConfigurationError` if any
    setting is out of range, so a faulty configuration fails at import time
    rather than halfway through a run.

    Example Usage:
        >>> from config import config
        >>> print(f"Physics Timestep (s): {config.Physics.TIMESTEP_SECONDS}")
        >>> print(f"Primary: {config.SolarSystem.PRIMARY_NAME}")
    """

    # --- Physics Configuration ---
    class Physics:
        """Configuration for the gravitational integrator.

        Attributes:
            GRAVITATIONAL_CONSTANT (float): G in m^3 kg^-1 s^-2.
            TIMESTEP_SECONDS (float): Simulated seconds advanced by one physics tick.
                                      Fixed; the integrator has no adaptive stepping.
            STEP_INTERVAL_SECONDS (float): Host seconds between two physics ticks.
                                           Decoupled from every sampling cadence.
        """
        GRAVITATIONAL_CONSTANT = GRAVITATIONAL_CONSTANT_M3_KG_S2
        TIMESTEP_SECONDS = SECONDS_PER_HOUR
        STEP_INTERVAL_SECONDS = 0.01

    # --- Sampling Configuration ---
    class Sampling:
        """Host-side cadences that read the simulation without driving it.

        Attributes:
            LIST_INTERVAL_SECONDS (float): Host seconds between two state listings.
            TRACE_INTERVAL_SECONDS (float): Host seconds between two trace samples.
        """
        LIST_INTERVAL_SECONDS = 0.24
        TRACE_INTERVAL_SECONDS = 0.05

    # --- Trace Configuration ---
    class Traces:
        """Configuration of per-body trace history.

        Attributes:
            ENABLED_BY_DEFAULT (bool): Whether traces are recorded from the start.
            MAX_POINTS (int): Max positions kept per body; oldest points are dropped.
        """
        ENABLED_BY_DEFAULT = False
        MAX_POINTS = 1000

    # --- Reference Frame Configuration ---
    class ReferenceFrame:
        """Configuration of the zero-momentum frame correction.

        Attributes:
            DISCIPLINE (str): "incremental" adjusts the primary on every membership
                              change; "recompute" rebuilds its velocity from the
                              momentum of all secondaries. Exactly one is used.
        """
        DISCIPLINE = "incremental"

    # --- Orbit Solver Configuration ---
    class Orbit:
        """Configuration of the osculating-orbit solver.

        Attributes:
            PARABOLIC_TOLERANCE (float): Relative tolerance on the vis-viva
                                         denominator `2*mu - r*v^2`. Values within
                                         this fraction of `2*mu` are treated as an
                                         unbound orbit and rejected.
        """
        PARABOLIC_TOLERANCE = 1e-9

    # --- Solar System Configuration ---
    class SolarSystem:
        """Configuration for the bodies created by `SolarSystemEnvironment.reset()`.

        Attributes:
            PRIMARY_NAME (str): Name of the body that carries the primary role.
            BODY_DATA (Dict[str, Dict]): Body name -> initial state. Each entry holds
                                         'mass_kg', 'position_m' [x, y] and
                                         'velocity_m_s' [vx, vy] in the simulation frame.
        """
        PRIMARY_NAME = "Sun"

        BODY_DATA = {
            'Sun': {
                'mass_kg': 1.989e30,
                'position_m': [0.0, 0.0],
                'velocity_m_s': [0.0, 0.0],
            },
            'Mercury': {
                'mass_kg': 3.285e23,
                'position_m': [69.817445e9, 0.0],
                'velocity_m_s': [0.0, 38.7e3],
            },
            'Venus': {
                'mass_kg': 4.867e24,
                'position_m': [-108e9, 0.0],
                'velocity_m_s': [0.0, -35.0e3],
            },
        }

    # --- Debug Configuration ---
    class Debug:
        """Configuration for debugging features and logging verbosity.

        Attributes:
            ORBITAL_MECHANICS (bool): Toggle for verbose logging from orbital mechanics calculations.
            MONITOR_ENERGY_CONSERVATION (bool): If True, periodically logs the total energy
                                                of the system to check for drift.
            ENERGY_CHECK_INTERVAL_STEPS (int): Frequency (physics ticks) for energy checks.
        """
        ORBITAL_MECHANICS = False
        MONITOR_ENERGY_CONSERVATION = True
        ENERGY_CHECK_INTERVAL_STEPS = 100

    def __init__(self):
        """Initializes the `SimulationConfig` instance and validates it.

        Raises:
            ConfigurationError: If `self.validate()` detects any issues with the
                                configuration values.
        """
        self.validate()

    def validate(self):
        """Performs validation of all simulation configuration settings.

        -   **Physics**: G, the timestep and the tick interval must be positive.
        -   **Sampling**: listing and trace intervals must be positive.
        -   **Traces**: `MAX_POINTS` must be positive.
        -   **ReferenceFrame**: `DISCIPLINE` must be a supported discipline.
        -   **Orbit**: `PARABOLIC_TOLERANCE` must lie in [0, 1).
        -   **SolarSystem**: the primary must be present in `BODY_DATA`; every body
            needs a positive mass and 2D position/velocity; no two bodies may
            start at the same position.

        Raises:
            ConfigurationError: If any configuration setting is found to be invalid.
        """
        # Physics validation
        if self.Physics.GRAVITATIONAL_CONSTANT <= 0:
            raise ConfigurationError("Physics.GRAVITATIONAL_CONSTANT must be positive.")
        if self.Physics.TIMESTEP_SECONDS <= 0:
            raise ConfigurationError("Physics.TIMESTEP_SECONDS must be positive.")
        if self.Physics.STEP_INTERVAL_SECONDS <= 0:
            raise ConfigurationError("Physics.STEP_INTERVAL_SECONDS must be positive.")

        # Sampling validation
        if self.Sampling.LIST_INTERVAL_SECONDS <= 0 or self.Sampling.TRACE_INTERVAL_SECONDS <= 0:
            raise ConfigurationError(
                "Sampling intervals (LIST_INTERVAL_SECONDS, TRACE_INTERVAL_SECONDS) must be positive."
            )
        if self.Sampling.LIST_INTERVAL_SECONDS < self.Physics.STEP_INTERVAL_SECONDS:
            logging.warning(
                f"Sampling.LIST_INTERVAL_SECONDS ({self.Sampling.LIST_INTERVAL_SECONDS}) is shorter than "
                f"Physics.STEP_INTERVAL_SECONDS ({self.Physics.STEP_INTERVAL_SECONDS}). "
                "Listings will repeat unchanged states."
            )

        if self.Traces.MAX_POINTS <= 0:
            raise ConfigurationError("Traces.MAX_POINTS must be positive.")

        if self.ReferenceFrame.DISCIPLINE not in SUPPORTED_FRAME_DISCIPLINES:
            raise ConfigurationError(
                f"ReferenceFrame.DISCIPLINE ({self.ReferenceFrame.DISCIPLINE!r}) must be one of "
                f"{SUPPORTED_FRAME_DISCIPLINES}."
            )

        if not (0.0 <= self.Orbit.PARABOLIC_TOLERANCE < 1.0):
            raise ConfigurationError(
                f"Orbit.PARABOLIC_TOLERANCE ({self.Orbit.PARABOLIC_TOLERANCE}) must be >= 0 and < 1."
            )

        # Solar System Data Validation
        if self.SolarSystem.PRIMARY_NAME not in self.SolarSystem.BODY_DATA:
            raise ConfigurationError(
                f"Primary '{self.SolarSystem.PRIMARY_NAME}' missing from SolarSystem.BODY_DATA."
            )

        seen_positions = {}
        for name, data in self.SolarSystem.BODY_DATA.items():
            if data.get('mass_kg', -1.0) <= 0:
                raise ConfigurationError(f"Mass of body '{name}' must be positive.")
            for key in ('position_m', 'velocity_m_s'):
                value = data.get(key)
                if value is None or len(value) != 2:
                    raise ConfigurationError(f"Body '{name}' needs a 2D '{key}' entry.")
            position_key = tuple(float(c) for c in data['position_m'])
            if position_key in seen_positions:
                raise ConfigurationError(
                    f"Bodies '{seen_positions[position_key]}' and '{name}' start at the same position {position_key}."
                )
            seen_positions[position_key] = name

        if self.Debug.ENERGY_CHECK_INTERVAL_STEPS <= 0:
            raise ConfigurationError("Debug.ENERGY_CHECK_INTERVAL_STEPS must be positive.")

        logging.info("Configuration validated successfully.")


# --- Instantiate the configuration ---
# This makes the config object available for import and runs validation.
# e.g., from config import config
try:
    config = SimulationConfig()
except ConfigurationError as e:
    logging.error(f"FATAL CONFIGURATION ERROR: {e}", exc_info=True)
    raise
