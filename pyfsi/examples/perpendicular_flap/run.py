"""One-way FSI: an elastic flap clamped in a channel.

The flap ``[-0.05, 0.05] x [0, 1]`` is clamped at the channel floor and
bent by a body force.  Its motion deforms the surrounding fluid mesh,
and the flow through the channel ``[-3, 3] x [0, 4]`` sees the moving
walls through the ALE formulation.  Nothing flows back to the flap.

Fluid patches::

    +-----------+--+-----------+
    |     1     |2 |     4     |
    |           |  |           |
    +-----------+--+-----------+
    |     0     |##|     3     |     ## = flap
    +-----------+--+-----------+

Run::

    python -m pyfsi.examples.perpendicular_flap.run --time 5 --warm-up
    python -m pyfsi.examples.perpendicular_flap.run flap.yaml --points 0
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Sequence

import numpy as np
import yaml

from pyfsi.boundaries import Dirichlet
from pyfsi.coupling import CouplingLink, MeshMotion, Monitor, StaggeredFSI, StepPolicy
from pyfsi.discretization import ElasticityAssembler, MassAssembler, NavierStokesAssembler
from pyfsi.errors import ConfigurationError
from pyfsi.geometry import Mesh, Rectangle
from pyfsi.materials import flap_rubber, pseudo_solid, uniform
from pyfsi.postprocess import (
    DiagnosticsLog,
    PhysicalField,
    TimeCollection,
    write_deformation,
    write_time_step,
)
from pyfsi.solvers import IterationType
from pyfsi.time import ElasticTimeIntegrator, IntegratorOptions, NavierStokesTimeIntegrator

logger = logging.getLogger(__name__)

HALF_WIDTH = 0.05
CHANNEL_HEIGHT = 4.0

# fluid patch indices
WEST_LOW, WEST_HIGH, ABOVE, EAST_LOW, EAST_HIGH = range(5)


@dataclass(frozen=True)
class FlapConfig:
    """Parameters of the flap benchmark.

    Attributes:
        youngs_modulus: Flap stiffness E (Pa).
        poissons_ratio: Flap Poisson ratio.
        density_solid: Flap density (kg/m³).
        loading: Body acceleration acting on the flap along +x (m/s²).
        mean_velocity: Mean inflow velocity of the parabolic profile.
        viscosity: Fluid kinematic viscosity.
        density_fluid: Fluid density.
        mesh_poissons_ratio: Poisson ratio of the mesh-motion pseudo solid.
        mesh_stiffening: Local stiffening exponent of the mesh motion.
        refine: Mesh refinement factor (multiplies all divisions).
        time_step: Regular macro step.
        time_span: Final simulated time.
        theta_fluid: θ of the fluid scheme.
        nonlinear_fluid: Newton instead of IMEX (Oseen) for the fluid.
        warm_up: Coarse steps of 0.1 during the first 2 s.
        num_points: Paraview output switch (0 disables).
        output_dir: Directory receiving log and Paraview files.
    """

    youngs_modulus: float = 4.0e6
    poissons_ratio: float = 0.3
    density_solid: float = 3000.0
    loading: float = 1.0
    mean_velocity: float = 1.0
    viscosity: float = 1.0
    density_fluid: float = 1.0
    mesh_poissons_ratio: float = 0.4
    mesh_stiffening: float = 2.5
    refine: int = 1
    time_step: float = 0.01
    time_span: float = 5.0
    theta_fluid: float = 0.5
    nonlinear_fluid: bool = False
    warm_up: bool = False
    num_points: int = 1000
    output_dir: str = "."

    def __post_init__(self) -> None:
        if self.refine < 1:
            raise ConfigurationError("refine must be at least 1.")
        if self.time_step <= 0 or self.time_span <= 0:
            raise ConfigurationError("time_step and time_span must be positive.")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "FlapConfig":
        """Build from a mapping; unknown keys are rejected."""
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "FlapConfig":
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")
        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data)

    def to_yaml(self) -> str:
        return yaml.safe_dump(asdict(self), sort_keys=False)


# ------------------------------------------------------------------
# Problem setup
# ------------------------------------------------------------------


def build_meshes(config: FlapConfig) -> tuple[Mesh, Mesh]:
    """Structure and fluid meshes with matching interface nodes."""
    r = config.refine
    w = HALF_WIDTH
    beam = Mesh.from_patches(
        [Rectangle.from_bounds(-w, w, 0.0, 1.0)],
        divisions=[(2 * r, 10 * r)],
        names=["flap"],
    )
    flow = Mesh.from_patches(
        [
            Rectangle.from_bounds(-3.0, -w, 0.0, 1.0),
            Rectangle.from_bounds(-3.0, -w, 1.0, CHANNEL_HEIGHT),
            Rectangle.from_bounds(-w, w, 1.0, CHANNEL_HEIGHT),
            Rectangle.from_bounds(w, 3.0, 0.0, 1.0),
            Rectangle.from_bounds(w, 3.0, 1.0, CHANNEL_HEIGHT),
        ],
        divisions=[
            (15 * r, 10 * r),
            (15 * r, 15 * r),
            (2 * r, 15 * r),
            (15 * r, 10 * r),
            (15 * r, 15 * r),
        ],
        names=["west_low", "west_high", "above", "east_low", "east_high"],
    )
    return beam, flow


def inflow_profile(mean_velocity: float, height: float = CHANNEL_HEIGHT):
    """Parabolic profile ``U(y) = 6 U_mean y (H - y) / H²``."""

    def profile(coords: np.ndarray) -> np.ndarray:
        y = coords[:, 1]
        return 6.0 * mean_velocity * y * (height - y) / height**2

    return profile


INTERFACE_SIDES = ((WEST_LOW, "east"), (ABOVE, "south"), (EAST_LOW, "west"))
WALL_SIDES = (
    (WEST_LOW, "south"),
    (EAST_LOW, "south"),
    (WEST_HIGH, "north"),
    (ABOVE, "north"),
    (EAST_HIGH, "north"),
)
INFLOW_SIDES = ((WEST_LOW, "west"), (WEST_HIGH, "west"))
OUTER_SIDES = INFLOW_SIDES + WALL_SIDES + ((EAST_LOW, "east"), (EAST_HIGH, "east"))


def build_problem(config: FlapConfig) -> StaggeredFSI:
    """Assemble the three fields and the staggered coupler."""
    beam_mesh, flow_mesh = build_meshes(config)
    ale_mesh = flow_mesh.copy()

    # structure
    solid = flap_rubber.with_properties(
        name="flap",
        youngs_modulus=config.youngs_modulus,
        poissons_ratio=config.poissons_ratio,
        density=config.density_solid,
    )
    beam_bcs = [Dirichlet(0, "south")]
    beam_stiffness = ElasticityAssembler(
        beam_mesh,
        uniform(beam_mesh, solid),
        beam_bcs,
        body_force=(config.loading * config.density_solid, 0.0),
        material_law="saint_venant_kirchhoff",
    )
    beam_mass = MassAssembler(beam_mesh, beam_bcs, density=config.density_solid)
    beam = ElasticTimeIntegrator(beam_stiffness, beam_mass, IntegratorOptions(theta=0.5))

    # mesh motion: zero displacement on the outer boundary, interface data added per step
    ale_bcs = [Dirichlet(p, s) for p, s in OUTER_SIDES + INTERFACE_SIDES]
    ale_stiffness = ElasticityAssembler(
        ale_mesh,
        uniform(ale_mesh, pseudo_solid.with_properties(poissons_ratio=config.mesh_poissons_ratio)),
        ale_bcs,
        local_stiffening=config.mesh_stiffening,
    )
    mesh_motion = MeshMotion(ale_stiffness)

    # flow
    profile = inflow_profile(config.mean_velocity)
    flow_bcs = (
        [Dirichlet(p, s, 0, profile) for p, s in INFLOW_SIDES]
        + [Dirichlet(p, s, 1) for p, s in INFLOW_SIDES]
        + [Dirichlet(p, s) for p, s in WALL_SIDES + INTERFACE_SIDES]
    )
    scheme = "implicit_nonlinear" if config.nonlinear_fluid else "implicit_linear"
    flow_stiffness = NavierStokesAssembler(
        flow_mesh,
        flow_bcs,
        viscosity=config.viscosity,
        density=config.density_fluid,
        linearization="newton_next" if config.nonlinear_fluid else "oseen",
    )
    flow_mass = MassAssembler(flow_mesh, flow_bcs, density=config.density_fluid)
    flow = NavierStokesTimeIntegrator(
        flow_stiffness,
        flow_mass,
        IntegratorOptions(
            scheme=scheme, theta=config.theta_fluid, iteration_type=IterationType.NEXT
        ),
    )

    beam_to_ale = [
        CouplingLink(0, "west", WEST_LOW, "east"),
        CouplingLink(0, "north", ABOVE, "south"),
        CouplingLink(0, "east", EAST_LOW, "west"),
    ]
    ale_to_flow = [CouplingLink(p, s, p, s) for p, s in INTERFACE_SIDES]
    ale_patches = [CouplingLink(p, None, p, None) for p in range(flow_mesh.n_patches)]

    policy = StepPolicy(config.time_step, warm_up=config.warm_up)
    monitor = Monitor(
        force_sides=INTERFACE_SIDES,
        pressure_points=((-2 * HALF_WIDTH, 0.5), (2 * HALF_WIDTH, 0.5)),
        displacement_point=(0.0, 1.0),
    )
    return StaggeredFSI(
        beam,
        mesh_motion,
        flow,
        beam_to_ale,
        ale_to_flow,
        ale_patches,
        policy,
        monitor=monitor,
        ramped_sides=INFLOW_SIDES,
    )


class FlapExporter:
    """Paraview output of flow, flap and mesh motion after each step."""

    def __init__(self, output_dir: str | Path, num_points: int) -> None:
        self.output_dir = Path(output_dir)
        self.num_points = num_points
        self.flow = TimeCollection(self.output_dir / "flap_flow")
        self.beam = TimeCollection(self.output_dir / "flap_beam")
        self.ale = TimeCollection(self.output_dir / "flap_ale")

    def __call__(self, fsi: StaggeredFSI, step: int) -> None:
        if self.num_points <= 0:
            return
        flow_mesh = fsi.fluid_mesh
        write_time_step(
            {
                "velocity": PhysicalField(flow_mesh, fsi.fluid.construct_solution(), "velocity"),
                "pressure": PhysicalField(flow_mesh, fsi.fluid.construct_pressure(), "pressure"),
            },
            self.output_dir / "flap_flow",
            self.flow,
            step,
            self.num_points,
            time=fsi.sim_time,
        )
        write_time_step(
            {
                "displacement": PhysicalField(
                    fsi.structure_mesh, fsi.structure.construct_solution(), "displacement"
                )
            },
            self.output_dir / "flap_beam",
            self.beam,
            step,
            self.num_points,
            time=fsi.sim_time,
        )
        write_deformation(
            fsi.mesh_motion.mesh,
            fsi.mesh_motion.displacement(),
            self.output_dir / "flap_ale",
            self.ale,
            step,
            time=fsi.sim_time,
        )

    def save(self) -> None:
        if self.num_points > 0:
            for collection in (self.flow, self.beam, self.ale):
                collection.save()


def run(config: FlapConfig) -> Any:
    """Run the benchmark; returns the :class:`SimulationResult`."""
    out = Path(config.output_dir)
    out.mkdir(parents=True, exist_ok=True)
    fsi = build_problem(config)
    exporter = FlapExporter(out, config.num_points)
    exporter(fsi, 0)
    try:
        with DiagnosticsLog(out / "flap_log.txt") as log:
            result = fsi.run(config.time_span, log=log, exporter=exporter)
    finally:
        exporter.save()
    logger.info(
        "ALE time: %.2fs, flow time: %.2fs, beam time: %.2fs",
        fsi.ale_time, fsi.flow_time, fsi.beam_time,
    )
    return result


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="One-way FSI benchmark: elastic flap in a channel."
    )
    parser.add_argument("config", nargs="?", help="YAML configuration file")
    parser.add_argument("--load", "-l", type=float, dest="loading", help="Body acceleration on the flap")
    parser.add_argument("--mean-velocity", "-m", type=float, help="Average inflow velocity")
    parser.add_argument("--viscosity", "-v", type=float, help="Fluid kinematic viscosity")
    parser.add_argument("--chi", "-x", type=float, dest="mesh_stiffening", help="Local stiffening degree for the mesh motion")
    parser.add_argument("--refine", "-r", type=int, help="Mesh refinement factor")
    parser.add_argument("--time", "-t", type=float, dest="time_span", help="Time span, sec")
    parser.add_argument("--step", "-s", type=float, dest="time_step", help="Time step")
    parser.add_argument("--theta-fluid", "-f", type=float, help="Theta of the fluid scheme")
    parser.add_argument("--newton", "-i", action="store_true", dest="nonlinear_fluid", default=None, help="Newton iterations for the fluid instead of IMEX")
    parser.add_argument("--warm-up", "-w", action="store_true", dest="warm_up", default=None, help="Large time steps during the first 2 seconds")
    parser.add_argument("--points", "-p", type=int, dest="num_points", help="Paraview output (0 = no plotting)")
    parser.add_argument("--output", "-o", dest="output_dir", help="Output directory")
    parser.add_argument("--print-config", action="store_true", help="Print the effective configuration and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> FlapConfig:
    """YAML file (if any) overridden by explicit command-line values."""
    config = FlapConfig.from_yaml(args.config) if args.config else FlapConfig()
    overrides = {
        f.name: getattr(args, f.name)
        for f in fields(FlapConfig)
        if getattr(args, f.name, None) is not None
    }
    return replace(config, **overrides)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)
    config = config_from_args(args)
    if args.print_config:
        print(config.to_yaml())
        return 0
    result = run(config)
    if not result.completed:
        logger.error("Run stopped at t=%g: %s", result.sim_time, result.failure)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
