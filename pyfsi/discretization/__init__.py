"""Discretization: P1 assemblers exposing the field-assembler capability."""

from pyfsi.discretization.base import (
    AssembledSystem,
    FieldAssembler,
    DofMapper,
    Assembler,
    p1_gradients,
)
from pyfsi.discretization.elasticity import ElasticityAssembler, elastic_stiffness_2d
from pyfsi.discretization.mass import MassAssembler
from pyfsi.discretization.navier_stokes import NavierStokesAssembler

__all__ = [
    "AssembledSystem",
    "FieldAssembler",
    "DofMapper",
    "Assembler",
    "p1_gradients",
    "ElasticityAssembler",
    "elastic_stiffness_2d",
    "MassAssembler",
    "NavierStokesAssembler",
]
