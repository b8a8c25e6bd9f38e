# main.py
import io
import logging
import cProfile
import pstats
import argparse # For command line arguments
from typing import Dict, List, Optional

from config import ConfigurationError, SUPPORTED_FRAME_DISCIPLINES
from environment import SolarSystemEnvironment
from physics_utils import PhysicsError
from solarsystem import BodyHandle, OrbitParameters


class IntervalTimer:
    """Repeating timer driven by explicit time deltas.

    `tick(delta)` accumulates host time and reports how many full intervals
    elapsed, carrying the remainder over to the next call. No wall clock is
    read, so a run driven with the same deltas is always reproducible.

    Attributes:
        duration_seconds (float): Length of one interval.
        elapsed_seconds (float): Time accumulated toward the next interval.
    """
    def __init__(self, duration_seconds: float):
        if duration_seconds <= 0:
            raise ConfigurationError(f"Timer duration must be positive, got {duration_seconds}.")
        self.duration_seconds = float(duration_seconds)
        self.elapsed_seconds = 0.0

    def tick(self, delta_seconds: float) -> int:
        if delta_seconds < 0:
            raise ValueError(f"Timer delta must be non-negative, got {delta_seconds}.")
        self.elapsed_seconds += delta_seconds
        finished = int(self.elapsed_seconds // self.duration_seconds)
        self.elapsed_seconds -= finished * self.duration_seconds
        return finished


class StarSystemSimulation:
    """Headless host loop for the star system.

    Runs two independent cadences on top of `SolarSystemEnvironment`: the fixed
    physics tick (`config.Physics.STEP_INTERVAL_SECONDS` of host time per tick)
    and the sampling cadences for traces and the state listing. Frame time only
    decides how many ticks run; it never changes the simulated step size.

    Attributes:
        environment (SolarSystemEnvironment): The simulated system.
        step_timer (IntervalTimer): Physics tick cadence.
        list_timer (IntervalTimer): State listing cadence.
        trace_timer (IntervalTimer): Trace sampling cadence.
        frame_count (int): Frames advanced so far.
        latest_orbits (Dict[BodyHandle, OrbitParameters]): Orbits solved on the last frame.
    """
    def __init__(self, environment: Optional[SolarSystemEnvironment] = None):
        try:
            self.environment = environment if environment is not None else SolarSystemEnvironment()
            if not self.environment.bodies:
                self.environment.reset()
        except ConfigurationError as e:
            logging.critical(f"Failed to initialize StarSystemSimulation due to ConfigurationError: {e}", exc_info=True)
            raise
        except PhysicsError as e:
            logging.critical(f"Failed to initialize StarSystemSimulation due to PhysicsError: {e}", exc_info=True)
            raise

        sim_config = self.environment.config
        self.step_timer = IntervalTimer(sim_config.Physics.STEP_INTERVAL_SECONDS)
        self.list_timer = IntervalTimer(sim_config.Sampling.LIST_INTERVAL_SECONDS)
        self.trace_timer = IntervalTimer(sim_config.Sampling.TRACE_INTERVAL_SECONDS)
        self.frame_count = 0
        self.latest_orbits: Dict[BodyHandle, OrbitParameters] = {}
        logging.info("StarSystemSimulation initialized successfully.")

    def advance_frame(self, frame_seconds: float) -> Dict[BodyHandle, OrbitParameters]:
        """Advances the host clock by one frame.

        1.  Runs as many physics ticks as the step timer completed.
        2.  Samples traces when the trace timer fires.
        3.  Lists body states when the listing timer fires.
        4.  Solves the osculating orbits for this frame.

        Returns:
            The orbit parameters per secondary handle for this frame.
        """
        for _ in range(self.step_timer.tick(frame_seconds)):
            self.environment.step()

        if self.trace_timer.tick(frame_seconds):
            self.environment.sample_traces()

        if self.list_timer.tick(frame_seconds):
            self.environment.list_objects()

        self.latest_orbits = self.environment.compute_orbits()
        self.frame_count += 1
        return self.latest_orbits

    def run(self, frames: int, frame_seconds: float):
        """Advances `frames` frames of `frame_seconds` host seconds each."""
        logging.info(f"Running {frames} frames of {frame_seconds} s.")
        for _ in range(frames):
            self.advance_frame(frame_seconds)
        logging.info(f"Finished after {self.environment.step_count} physics steps.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the headless star system simulation.")
    parser.add_argument("--frames", type=int, default=600, help="Number of host frames to run.")
    parser.add_argument("--frame-seconds", type=float, default=1.0 / 60.0,
                        help="Host seconds per frame (does not change the physics step).")
    parser.add_argument("--no-sun", action="store_true", help="Start with the primary removed from the system.")
    parser.add_argument("--traces", action="store_true", help="Record body traces.")
    parser.add_argument("--discipline", choices=SUPPORTED_FRAME_DISCIPLINES, default=None,
                        help="Reference frame correction discipline (defaults to config).")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging verbosity.")
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Enable profiling for the simulation. Statistics will be saved to 'simulation_profile.prof'."
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    profiler = None
    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        logging.info("cProfile profiling enabled. Output will be saved to simulation_profile.prof upon completion.")

    try:
        environment = SolarSystemEnvironment(discipline=args.discipline)
        environment.reset()
        environment.set_traces_enabled(args.traces)
        if args.no_sun:
            environment.set_primary_present(False)

        simulation = StarSystemSimulation(environment)
        simulation.run(args.frames, args.frame_seconds)
        return 0
    except ConfigurationError as e_config_main:
        logging.critical(f"Simulation could not be initialized or run due to a ConfigurationError: {e_config_main}", exc_info=True)
        return 2
    except PhysicsError as e_physics_main:
        logging.critical(f"Simulation stopped on a PhysicsError: {e_physics_main}", exc_info=True)
        return 1
    finally:
        if profiler:
            profiler.disable()
            stats_file = "simulation_profile.prof"
            profiler.dump_stats(stats_file)
            summary = io.StringIO()
            pstats.Stats(profiler, stream=summary).sort_stats('cumulative').print_stats(20)
            logging.info(f"Profiling data saved to {stats_file}\n--- Top 20 Profiled Functions (Cumulative Time) ---\n{summary.getvalue()}")


if __name__ == "__main__":
    raise SystemExit(main())
