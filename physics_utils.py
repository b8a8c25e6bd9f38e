# physics_utils.py

import math

import numpy as np

class PhysicsError(Exception):
    """Custom exception for physics-related errors, including numerical issues."""
    pass

class DegenerateConfigurationError(PhysicsError):
    """Raised when a caller violates a physical precondition.

    Examples are a non-positive mass, two distinct bodies at zero separation,
    a non-positive time step, or a frame correction requested while no primary
    body exists. These are caller bugs; they are reported instead of being
    allowed to turn into NaN or infinite state.
    """
    pass

class DegenerateOrbitError(PhysicsError):
    """Raised by the orbit solver when the relative motion is not an ellipse.

    Near-parabolic and hyperbolic trajectories have no finite semi-minor axis.
    Hosts are expected to skip the ellipse for that body rather than abort.
    """
    pass

def safe_divide(numerator, denominator, epsilon=1e-12, default_on_zero_denom=0.0):
    """
    Safely divides two numbers, handling potential division by zero.

    Args:
        numerator (float or np.ndarray): The number(s) to be divided.
        denominator (float): The number to divide by.
        epsilon (float): Threshold below which the denominator is considered zero.
        default_on_zero_denom (float): Value to return if denominator is effectively zero.

    Returns:
        float or np.ndarray: The result of the division, or default_on_zero_denom
        if the denominator is near zero.
    """
    if abs(denominator) < epsilon:
        if isinstance(numerator, np.ndarray):
            return np.full_like(numerator, default_on_zero_denom, dtype=np.float64)
        return default_on_zero_denom
    return numerator / denominator

def as_vector2(values):
    """Converts a 2-element sequence into a float64 numpy vector.

    Raises:
        ValueError: If `values` does not hold exactly two components.
    """
    vector = np.array(values, dtype=np.float64)
    if vector.shape != (2,):
        raise ValueError(f"Expected a 2D vector, got shape {vector.shape}.")
    return vector

def cross_2d(a, b):
    """Scalar z-component of the cross product of two 2D vectors."""
    return float(a[0] * b[1] - a[1] * b[0])

def cross_vector_scalar(vector, scalar):
    """Cross product of an in-plane vector with an out-of-plane scalar.

    For `v = (vx, vy, 0)` and `h = (0, 0, h)`, `v x h = (vy * h, -vx * h, 0)`.
    """
    return np.array([vector[1] * scalar, -vector[0] * scalar], dtype=np.float64)

def angle_from_reference_axis(vector):
    """
    Signed angle in radians from the fixed +X reference axis to `vector`, in (-pi, pi].

    Counter-clockwise is positive. A zero vector yields 0.0.
    """
    return math.atan2(float(vector[1]), float(vector[0]))

def unit_vector_from_angle(angle_rad):
    """Unit vector pointing `angle_rad` radians away from the +X axis."""
    return np.array([math.cos(angle_rad), math.sin(angle_rad)], dtype=np.float64)
