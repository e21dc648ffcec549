"""Time: θ-schemes, stepping, solution state and field integrators."""

from pyfsi.time.stepper import Stepper
from pyfsi.time.schemes import (
    TimeScheme,
    Implicit,
    Explicit,
    CrankNicolson,
    Theta,
    IntegrationScheme,
    theta_scheme,
)
from pyfsi.time.state import FieldState, Checkpoint
from pyfsi.time.integrator import IntegratorOptions, IntegratorStatus, TimeIntegrator
from pyfsi.time.elastic import ElasticTimeIntegrator
from pyfsi.time.navier_stokes import NavierStokesTimeIntegrator

__all__ = [
    "Stepper",
    "TimeScheme",
    "Implicit",
    "Explicit",
    "CrankNicolson",
    "Theta",
    "IntegrationScheme",
    "theta_scheme",
    "FieldState",
    "Checkpoint",
    "IntegratorOptions",
    "IntegratorStatus",
    "TimeIntegrator",
    "ElasticTimeIntegrator",
    "NavierStokesTimeIntegrator",
]
