import math
import unittest
import numpy as np
from config import SimulationConfig
from physics_utils import DegenerateConfigurationError, DegenerateOrbitError
from solarsystem import Body, BodyRole, OrbitalMechanics, take_system_snapshot

G = 6.67e-11
SUN_MASS = 1.989e30
MU_SUN = G * SUN_MASS


class VerboseMechanicsConfig(SimulationConfig):
    class Debug(SimulationConfig.Debug):
        ORBITAL_MECHANICS = True


def make_sun(velocity=(0.0, 0.0)):
    return Body("Sun", SUN_MASS, [0.0, 0.0], list(velocity), role=BodyRole.PRIMARY)


def make_mercury():
    return Body("Mercury", 3.285e23, [69.817445e9, 0.0], [0.0, 38.7e3])


class TestSystemSnapshot(unittest.TestCase):

    def test_snapshot_is_detached_from_bodies(self):
        sun, mercury = make_sun(), make_mercury()
        snapshot = take_system_snapshot([sun, mercury])
        mercury.position[0] = 1.0
        self.assertEqual(snapshot[1].position[0], 69.817445e9)
        self.assertEqual([entry.name for entry in snapshot], ["Sun", "Mercury"])
        with self.assertRaises(ValueError):
            snapshot[0].position[0] = 5.0

    def test_identical_bodies_have_distinct_identities(self):
        first = Body("A", 1.0, [1.0, 1.0], [0.0, 0.0])
        second = Body("A", 1.0, [1.0, 1.0], [0.0, 0.0])
        snapshot = take_system_snapshot([first, second])
        self.assertNotEqual(snapshot[0].identity, snapshot[1].identity)


class TestAdvance(unittest.TestCase):

    def setUp(self):
        self.mechanics = OrbitalMechanics()

    def test_empty_system_is_a_no_op(self):
        self.mechanics.advance([], 3600.0, G)

    def test_single_body_drifts_with_constant_velocity(self):
        body = Body("Lonely", 5.0e24, [1.0e9, -2.0e9], [10.0, -20.0])
        self.mechanics.advance([body], 3600.0, G)
        np.testing.assert_array_equal(body.velocity, [10.0, -20.0])
        np.testing.assert_allclose(body.position, [1.0e9 + 36000.0, -2.0e9 - 72000.0])

    def test_mercury_one_hour_step(self):
        sun, mercury = make_sun(), make_mercury()
        self.mechanics.advance([sun, mercury], 3600.0, G)

        expected_acceleration = G * SUN_MASS / 69.817445e9 ** 2
        self.assertAlmostEqual(expected_acceleration, 0.0272, places=4)
        self.assertLess(abs(mercury.velocity[1] - 38.7e3) / 38.7e3, 0.005)
        self.assertLess(mercury.position[0], 69.817445e9)
        np.testing.assert_allclose(mercury.velocity[0], -expected_acceleration * 3600.0, rtol=1e-9)
        # The star is pulled toward the planet
        self.assertGreater(sun.velocity[0], 0.0)

    def test_velocity_is_updated_before_position(self):
        sun, mercury = make_sun(), make_mercury()
        self.mechanics.advance([sun, mercury], 3600.0, G)
        np.testing.assert_allclose(
            mercury.position, np.array([69.817445e9, 0.0]) + mercury.velocity * 3600.0, rtol=1e-15
        )

    def test_two_body_momentum_exchange_is_symmetric(self):
        heavy = Body("Heavy", 5.0e26, [0.0, 0.0], [0.0, 0.0])
        light = Body("Light", 7.0e22, [3.0e10, 4.0e10], [0.0, 0.0])
        self.mechanics.advance([heavy, light], 60.0, G)
        heavy_impulse = heavy.mass_kg * np.linalg.norm(heavy.velocity)
        light_impulse = light.mass_kg * np.linalg.norm(light.velocity)
        self.assertAlmostEqual(heavy_impulse / light_impulse, 1.0, places=12)
        # Attraction: each body moves toward the other
        self.assertGreater(np.dot(heavy.velocity, light.position - heavy.position), 0.0)
        self.assertLess(np.dot(light.velocity, light.position - heavy.position), 0.0)

    def test_result_does_not_depend_on_iteration_order(self):
        def build():
            return [
                Body("A", 2.0e30, [0.0, 0.0], [0.0, 0.0]),
                Body("B", 6.0e24, [1.5e11, 0.0], [0.0, 29.8e3]),
                Body("C", 6.4e23, [0.0, -2.3e11], [24.1e3, 0.0]),
            ]
        forward, backward = build(), build()
        self.mechanics.advance(forward, 3600.0, G)
        self.mechanics.advance(list(reversed(backward)), 3600.0, G)
        for first, second in zip(forward, backward):
            np.testing.assert_allclose(first.position, second.position, rtol=1e-12)
            np.testing.assert_allclose(first.velocity, second.velocity, rtol=1e-12, atol=1e-12)

    def test_advance_is_deterministic(self):
        first = [make_sun(), make_mercury()]
        second = [make_sun(), make_mercury()]
        for _ in range(24):
            self.mechanics.advance(first, 3600.0, G)
            self.mechanics.advance(second, 3600.0, G)
        for a, b in zip(first, second):
            np.testing.assert_array_equal(a.position, b.position)
            np.testing.assert_array_equal(a.velocity, b.velocity)

    def test_coincident_bodies_are_rejected_without_mutation(self):
        sun = make_sun()
        twin = Body("Twin", 1.0e20, [0.0, 0.0], [5.0, 5.0])
        far = Body("Far", 1.0e20, [1.0e11, 0.0], [0.0, 1.0])
        with self.assertRaises(DegenerateConfigurationError):
            self.mechanics.advance([far, sun, twin], 3600.0, G)
        np.testing.assert_array_equal(far.position, [1.0e11, 0.0])
        np.testing.assert_array_equal(far.velocity, [0.0, 1.0])

    def test_invalid_mass_and_timestep_are_rejected(self):
        with self.assertRaises(DegenerateConfigurationError):
            self.mechanics.advance([Body("Massless", 0.0, [0.0, 0.0], [0.0, 0.0])], 3600.0, G)
        with self.assertRaises(DegenerateConfigurationError):
            self.mechanics.advance([make_sun(), make_mercury()], 0.0, G)
        with self.assertRaises(DegenerateConfigurationError):
            self.mechanics.advance([make_sun(), make_mercury()], -1.0, G)

    def test_non_finite_state_is_rejected_without_mutation(self):
        sun = make_sun()
        bad = Body("Bad", 1.0e20, [float("nan"), 0.0], [0.0, 0.0])
        with self.assertRaises(DegenerateConfigurationError):
            self.mechanics.advance([sun, bad], 3600.0, G)
        np.testing.assert_array_equal(sun.velocity, [0.0, 0.0])
        with self.assertRaises(DegenerateConfigurationError):
            self.mechanics.advance([sun, Body("Fast", 1.0e20, [1.0e11, 0.0], [0.0, float("inf")])], 3600.0, G)

    def test_separation_that_underflows_is_rejected_without_mutation(self):
        far = Body("Far", 1.0e20, [1.0e11, 0.0], [0.0, 1.0])
        first = Body("A", 1.0e20, [0.0, 0.0], [0.0, 0.0])
        second = Body("B", 1.0e20, [1.0e-170, 0.0], [0.0, 0.0])
        with self.assertRaises(DegenerateConfigurationError):
            self.mechanics.advance([far, first, second], 3600.0, G)
        np.testing.assert_array_equal(far.velocity, [0.0, 1.0])
        np.testing.assert_array_equal(far.position, [1.0e11, 0.0])

    def test_overflowing_acceleration_is_rejected_without_mutation(self):
        far = Body("Far", 1.0e20, [1.0e11, 0.0], [0.0, 1.0])
        first = Body("A", 1.0e30, [0.0, 0.0], [0.0, 0.0])
        second = Body("B", 1.0e30, [1.0e-150, 0.0], [0.0, 0.0])
        with self.assertRaises(DegenerateConfigurationError):
            self.mechanics.advance([far, first, second], 3600.0, G)
        np.testing.assert_array_equal(far.velocity, [0.0, 1.0])

    def test_debug_logging_follows_injected_config(self):
        mechanics = OrbitalMechanics(VerboseMechanicsConfig())
        with self.assertLogs(level="DEBUG") as logs:
            mechanics.advance([make_sun(), make_mercury()], 3600.0, G)
        self.assertTrue(any("ADVANCE DBG: Mercury" in line for line in logs.output))


class TestSolveOrbit(unittest.TestCase):

    def setUp(self):
        self.mechanics = OrbitalMechanics()
        self.sun = make_sun()

    def test_circular_orbit(self):
        distance = 1.5e11
        planet = Body("Probe", 1.0, [distance, 0.0], [0.0, math.sqrt(MU_SUN / distance)])
        orbit = self.mechanics.solve_orbit(planet, self.sun, MU_SUN)
        self.assertLess(orbit.eccentricity, 1e-9)
        np.testing.assert_allclose(orbit.semi_major_axis, distance, rtol=1e-9)
        np.testing.assert_allclose(orbit.semi_minor_axis, distance, rtol=1e-9)

    def test_eccentric_orbit_at_periapsis(self):
        distance, eccentricity = 1.0e11, 0.2
        speed = math.sqrt(MU_SUN * (1.0 + eccentricity) / distance)
        planet = Body("Probe", 1.0, [distance, 0.0], [0.0, speed])
        orbit = self.mechanics.solve_orbit(planet, self.sun, MU_SUN)

        expected_a = distance / (1.0 - eccentricity)
        np.testing.assert_allclose(orbit.semi_major_axis, expected_a, rtol=1e-9)
        np.testing.assert_allclose(orbit.semi_minor_axis, expected_a * math.sqrt(1 - eccentricity ** 2), rtol=1e-9)
        np.testing.assert_allclose(orbit.eccentricity, eccentricity, rtol=1e-9)
        np.testing.assert_allclose(orbit.eccentricity_vector, [-eccentricity, 0.0], atol=1e-12)
        self.assertAlmostEqual(abs(orbit.orientation_angle), math.pi, places=9)
        np.testing.assert_allclose(orbit.empty_focus, [-2.0 * eccentricity * expected_a, 0.0], rtol=1e-9, atol=1.0)
        np.testing.assert_allclose(orbit.ellipse_center, [-eccentricity * expected_a, 0.0], rtol=1e-9, atol=1.0)

    def test_barycenter_is_mass_weighted(self):
        star = Body("Star", 3.0, [0.0, 0.0], [0.0, 0.0], role=BodyRole.PRIMARY)
        planet = Body("Planet", 1.0, [4.0, 0.0], [0.0, 1.0])
        orbit = self.mechanics.solve_orbit(planet, star, 3.0)
        np.testing.assert_allclose(orbit.barycenter, [1.0, 0.0])

    def test_placement_with_offset_primary_and_heavy_secondary(self):
        # Barycenter (11, 2); relative state r = (3, 0), v = (0, sqrt(1.5)) with mu = 3
        # gives a = 6, e = (-0.5, 0), empty focus (-6, 0), center ((-6, 0) - (11, 2)) / 2.
        star = Body("Star", 3.0, [10.0, 2.0], [0.5, 0.0], role=BodyRole.PRIMARY)
        planet = Body("Planet", 1.0, [14.0, 2.0], [0.5, math.sqrt(1.5)])
        orbit = self.mechanics.solve_orbit(planet, star, 3.0)
        np.testing.assert_allclose(orbit.barycenter, [11.0, 2.0], rtol=1e-12)
        np.testing.assert_allclose(orbit.semi_major_axis, 6.0, rtol=1e-12)
        np.testing.assert_allclose(orbit.semi_minor_axis, 6.0 * math.sqrt(0.75), rtol=1e-12)
        np.testing.assert_allclose(orbit.eccentricity_vector, [-0.5, 0.0], atol=1e-12)
        np.testing.assert_allclose(orbit.empty_focus, [-6.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(orbit.ellipse_center, [-8.5, -1.0], atol=1e-12)

    def test_parabolic_tolerance_can_be_widened(self):
        planet = make_mercury()
        self.mechanics.solve_orbit(planet, self.sun, MU_SUN, 1e-9)
        with self.assertRaises(DegenerateOrbitError):
            self.mechanics.solve_orbit(planet, self.sun, MU_SUN, 0.9)

    def test_mu_defaults_to_primary_mass(self):
        planet = make_mercury()
        explicit = self.mechanics.solve_orbit(planet, self.sun, 6.67e-11 * SUN_MASS)
        implicit = self.mechanics.solve_orbit(planet, self.sun)
        self.assertEqual(explicit.semi_major_axis, implicit.semi_major_axis)

    def test_solver_does_not_mutate_bodies(self):
        planet = make_mercury()
        self.mechanics.solve_orbit(planet, self.sun, MU_SUN)
        np.testing.assert_array_equal(planet.position, [69.817445e9, 0.0])
        np.testing.assert_array_equal(planet.velocity, [0.0, 38.7e3])

    def test_hyperbolic_orbit_is_rejected(self):
        distance = 1.0e11
        planet = Body("Comet", 1.0, [distance, 0.0], [0.0, 2.0 * math.sqrt(MU_SUN / distance)])
        with self.assertRaises(DegenerateOrbitError):
            self.mechanics.solve_orbit(planet, self.sun, MU_SUN)

    def test_parabolic_orbit_is_rejected(self):
        distance = 1.0e11
        planet = Body("Comet", 1.0, [distance, 0.0], [0.0, math.sqrt(2.0 * MU_SUN / distance)])
        with self.assertRaises(DegenerateOrbitError):
            self.mechanics.solve_orbit(planet, self.sun, MU_SUN)

    def test_secondary_on_primary_is_rejected(self):
        planet = Body("Impactor", 1.0, [0.0, 0.0], [0.0, 1.0])
        with self.assertRaises(DegenerateConfigurationError):
            self.mechanics.solve_orbit(planet, self.sun, MU_SUN)

    def test_non_positive_mu_is_rejected(self):
        with self.assertRaises(DegenerateConfigurationError):
            self.mechanics.solve_orbit(make_mercury(), self.sun, 0.0)


class TestSystemInvariants(unittest.TestCase):

    def test_total_momentum(self):
        mechanics = OrbitalMechanics()
        bodies = [Body("A", 2.0, [0.0, 0.0], [1.0, 0.0]), Body("B", 3.0, [1.0, 0.0], [0.0, -2.0])]
        np.testing.assert_allclose(mechanics.calculate_total_momentum(bodies), [2.0, -6.0])

    def test_total_energy_of_pair(self):
        mechanics = OrbitalMechanics()
        bodies = [Body("A", 2.0, [0.0, 0.0], [1.0, 0.0]), Body("B", 3.0, [2.0, 0.0], [0.0, 0.0])]
        # Kinetic 1.0, potential -1 * 2 * 3 / 2 with G = 1
        self.assertAlmostEqual(mechanics.calculate_total_system_energy(bodies, 1.0), 1.0 - 3.0)

    def test_energy_of_coincident_pair_is_rejected(self):
        mechanics = OrbitalMechanics()
        bodies = [Body("A", 2.0, [0.0, 0.0], [0.0, 0.0]), Body("B", 3.0, [0.0, 0.0], [0.0, 0.0])]
        with self.assertRaises(DegenerateConfigurationError):
            mechanics.calculate_total_system_energy(bodies, 1.0)


if __name__ == '__main__':
    unittest.main(argv=['first-arg-is-ignored'], exit=False)
