"""One-way staggered fluid–structure coupling.

Each macro step runs, in order:

1. structure step → displacement increment,
2. mesh motion with the increment added on the interface (one Newton
   iteration) and a validity check of the moved mesh,
3. fluid step on the moved mesh, with the mesh velocity as interface
   velocity and as ALE correction of the convection.

No data flows back from the fluid to the structure.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import numpy as np

from pyfsi.boundaries.base import BoundaryKey
from pyfsi.boundaries.time_varying import CosineRamp
from pyfsi.coupling.base import AleCoupling, CoupledProblem, CouplingLink
from pyfsi.errors import ConfigurationError, ConvergenceFailure, MeshBreakdownError
from pyfsi.postprocess.log import StepRecord
from pyfsi.postprocess.probes import PointProbe, PressureDifference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepPolicy:
    """Macro step size and inflow ramping.

    Args:
        time_step: Regular step size.
        warm_up: Use *warm_up_step* while ``sim_time < warm_up_time``.
        warm_up_time: Length of the warm-up interval.
        warm_up_step: Coarse step used during warm-up.
        ramp_time: Duration of the default cosine ramp.
        ramp: Custom ramp ``f(t)`` rising from 0 to 1.
    """

    time_step: float
    warm_up: bool = False
    warm_up_time: float = 2.0
    warm_up_step: float = 0.1
    ramp_time: float = 2.0
    ramp: Callable[[float], float] | None = None

    def __post_init__(self) -> None:
        if self.time_step <= 0 or self.warm_up_step <= 0:
            raise ConfigurationError("Step sizes must be positive.")
        if self.ramp_time <= 0:
            raise ConfigurationError("ramp_time must be positive.")

    def step_size(self, sim_time: float) -> float:
        if self.warm_up and sim_time < self.warm_up_time:
            return self.warm_up_step
        return self.time_step

    def ramp_factor(self, t: float) -> float:
        ramp = self.ramp or CosineRamp(self.ramp_time)
        return float(ramp(t))


@dataclass(frozen=True)
class Monitor:
    """Quantities recorded after every macro step.

    Args:
        force_sides: Fluid ``(patch, side)`` boundaries for drag and lift.
        pressure_points: Two points; their pressure difference is logged.
        displacement_point: Structure point whose displacement is logged.
    """

    force_sides: tuple[tuple[int, str], ...] = ()
    pressure_points: tuple[tuple[float, float], tuple[float, float]] | None = None
    displacement_point: tuple[float, float] | None = None


@dataclass
class SimulationResult:
    """Outcome of :meth:`StaggeredFSI.run`.

    Attributes:
        records: One record per completed macro step.
        sim_time: Simulated time reached.
        breakdown: The run stopped on an invalid mesh.
        failure: Message of the fatal error, if any.
    """

    records: list[StepRecord] = field(default_factory=list)
    sim_time: float = 0.0
    breakdown: bool = False
    failure: str | None = None

    @property
    def steps(self) -> int:
        return len(self.records)

    @property
    def completed(self) -> bool:
        return self.failure is None


class StaggeredFSI(CoupledProblem):
    """Structure → mesh motion → fluid staggered coupling.

    Args:
        structure: :class:`~pyfsi.time.elastic.ElasticTimeIntegrator`.
        mesh_motion: :class:`~pyfsi.coupling.mesh_motion.MeshMotion`.
        fluid: :class:`~pyfsi.time.navier_stokes.NavierStokesTimeIntegrator`.
        structure_to_mesh: Links from structure sides to mesh-motion sides.
        mesh_to_fluid: Links from mesh-motion sides to fluid sides; the
            fluid velocity there is set to the mesh velocity.
        ale_patches: Whole-patch links from mesh-motion to fluid patches.
        policy: Step-size and ramp policy.
        monitor: Quantities to record.
        ramped_sides: Fluid ``(patch, side)`` boundaries whose data is
            scaled by the ramp (e.g. the inflow).

    Example::

        fsi = StaggeredFSI(beam, ale, flow, beam_links, wall_links,
                           patch_links, StepPolicy(0.01, warm_up=True))
        result = fsi.run(time_span=10.0, log=DiagnosticsLog("fsi.txt"))
    """

    coupling_strategy = "staggered"

    def __init__(
        self,
        structure: Any,
        mesh_motion: Any,
        fluid: Any,
        structure_to_mesh: Sequence[CouplingLink],
        mesh_to_fluid: Sequence[CouplingLink],
        ale_patches: Sequence[CouplingLink],
        policy: StepPolicy,
        monitor: Monitor | None = None,
        ramped_sides: Sequence[tuple[int, str]] = (),
    ) -> None:
        super().__init__({"structure": structure, "mesh_motion": mesh_motion, "fluid": fluid})
        self.structure = structure
        self.mesh_motion = mesh_motion
        self.fluid = fluid
        self.structure_to_mesh = list(structure_to_mesh)
        self.mesh_to_fluid = list(mesh_to_fluid)
        self.policy = policy
        self.monitor = monitor or Monitor()

        self.ale = fluid.ale_coupling
        if self.ale is None:
            self.ale = AleCoupling(mesh_motion.mesh, ale_patches)
            fluid.enable_ale_coupling(self.ale)

        self.ale_time = 0.0
        self.flow_time = 0.0
        self.beam_time = 0.0
        self.steps_done = 0

        pending = fluid.all_fixed_dofs()
        n_comp = fluid.stiffness.dofs.n_components
        self._ramped_keys = [
            BoundaryKey(patch, side, comp) for patch, side in ramped_sides for comp in range(n_comp)
        ]
        self._ramp_values = pending.copy()
        if self._ramped_keys:
            fluid.set_initial_fixed_dofs(self._ramped(pending, self.policy.ramp_factor(0.0)))

    # ------------------------------------------------------------------
    # Setup checks
    # ------------------------------------------------------------------

    @property
    def structure_mesh(self) -> Any:
        return self.structure.stiffness.mesh

    @property
    def fluid_mesh(self) -> Any:
        return self.fluid.stiffness.mesh

    def validate(self) -> list[str]:
        issues = super().validate()
        pairs = [
            (self.structure_to_mesh, self.structure_mesh, self.mesh_motion.mesh),
            (self.mesh_to_fluid, self.mesh_motion.mesh, self.fluid_mesh),
            (self.ale.links, self.mesh_motion.mesh, self.fluid_mesh),
        ]
        for links, source, target in pairs:
            for link in links:
                try:
                    link.check(source, target)
                except ConfigurationError as exc:
                    issues.append(str(exc))
        return issues

    def _ramped(self, fixed: Any, factor: float) -> Any:
        """*fixed* with the ramped entries set to *factor* times their full values."""
        ramped = self._ramp_values.scaled(factor, self._ramped_keys)
        out = fixed.copy()
        out.update((key, ramped[key]) for key in self._ramped_keys)
        return out

    # ------------------------------------------------------------------
    # Macro step
    # ------------------------------------------------------------------

    def step(self) -> StepRecord:
        """Advance structure, mesh and fluid by one macro step.

        Raises:
            ConvergenceFailure: If a sub-solve did not converge; every
                field is rolled back to the start of the step.
            MeshBreakdownError: If the moved mesh folds; raised before
                the fluid is touched, with the structure rolled back.
        """
        dt = self.policy.step_size(self.sim_time)
        if self._ramped_keys:
            factor = self.policy.ramp_factor(self.sim_time + dt)
            self.fluid.set_all_fixed_dofs(self._ramped(self.fluid.all_fixed_dofs(), factor))

        self.structure.save_state()
        self.fluid.save_state()

        # structure
        disp_before = self.structure.construct_solution()
        t0 = time.perf_counter()
        self.structure.make_time_step(dt)
        self.beam_time += time.perf_counter() - t0
        if not self.structure.converged:
            report = self.structure.last_report
            self.structure.recover_state()
            raise ConvergenceFailure(
                f"Structure did not converge at t={self.sim_time + dt:g}", report
            )
        increment = self.structure.construct_solution() - disp_before

        # mesh motion
        mm = self.mesh_motion
        t0 = time.perf_counter()
        mm.begin()
        for link in self.structure_to_mesh:
            trace = link.transfer(self.structure_mesh, mm.mesh, increment)
            mm.add_boundary_increment(link.target_patch, link.target_side, trace)
        report = mm.solve()
        self.ale_time += time.perf_counter() - t0
        if not report.converged:
            mm.rollback()
            self.structure.recover_state()
            raise ConvergenceFailure(
                f"Mesh motion did not converge at t={self.sim_time + dt:g}", report
            )
        min_jac = mm.min_jacobian()
        if min_jac <= 0.0:
            mm.rollback()
            self.structure.recover_state()
            raise MeshBreakdownError(
                f"Mesh folded at t={self.sim_time + dt:g} (min Jacobian ratio {min_jac:.3e})",
                min_jacobian=min_jac,
            )
        delta = mm.trial_displacement() - mm.displacement()
        mm.commit()

        # fluid
        fluid_delta = self.ale.map_to(self.fluid_mesh, delta)
        self.fluid_mesh.move_nodes(fluid_delta)
        mesh_velocity = delta / dt
        previous_velocity = self.ale.mesh_velocity
        self.ale.set_mesh_velocity(mesh_velocity)
        for link in self.mesh_to_fluid:
            trace = link.transfer(mm.mesh, self.fluid_mesh, mesh_velocity)
            self.fluid.set_fixed_dofs(link.target_patch, link.target_side, trace)
        t0 = time.perf_counter()
        self.fluid.make_time_step(dt, ale=True)
        self.flow_time += time.perf_counter() - t0
        if not self.fluid.converged:
            report = self.fluid.last_report
            self.fluid.recover_state()
            self.fluid_mesh.move_nodes(-fluid_delta)
            self.ale.set_mesh_velocity(previous_velocity)
            mm.revert()
            self.structure.recover_state()
            raise ConvergenceFailure(
                f"Flow did not converge at t={self.sim_time + dt:g}", report
            )

        self.sim_time += dt
        self.steps_done += 1
        record = self.record()
        logger.debug("Step %d: t=%.4f, dt=%g", self.steps_done, self.sim_time, dt)
        return record

    def record(self) -> StepRecord:
        """Diagnostics of the current state."""
        mon = self.monitor
        drag = lift = 0.0
        if mon.force_sides:
            drag, lift = (float(v) for v in self.fluid.compute_force(mon.force_sides))
        pressure_diff = 0.0
        if mon.pressure_points is not None:
            probe = PressureDifference(*mon.pressure_points)
            pressure_diff = probe.sample(self.fluid_mesh, self.fluid.construct_pressure())
        disp = np.zeros(2)
        if mon.displacement_point is not None:
            disp = PointProbe(mon.displacement_point).sample(
                self.structure_mesh, self.structure.construct_solution()
            )
        return StepRecord(
            sim_time=self.sim_time,
            drag=drag,
            lift=lift,
            pressure_diff=pressure_diff,
            disp_x=float(disp[0]),
            disp_y=float(disp[1]),
            ale_norm=self.mesh_motion.l2_norm(),
            ale_time=self.ale_time,
            flow_time=self.flow_time,
            beam_time=self.beam_time,
            flow_iter=self.fluid.number_iterations,
            beam_iter=self.structure.number_iterations,
        )

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def run(
        self,
        time_span: float,
        log: Any = None,
        exporter: Callable[["StaggeredFSI", int], None] | None = None,
    ) -> SimulationResult:
        """Step until *time_span* is reached or a fatal condition occurs.

        Args:
            time_span: Final simulated time.
            log: :class:`~pyfsi.postprocess.log.DiagnosticsLog` receiving a
                line for the initial state of a fresh run, then one per step.
            exporter: Called as ``exporter(self, step)`` after each step.

        Returns:
            :class:`SimulationResult`; the log keeps every completed step
            even when the run stops early.
        """
        # traces only coincide before the fluid mesh has moved
        issues = self.validate() if self.steps_done == 0 else []
        if issues:
            raise ConfigurationError("; ".join(issues))

        result = SimulationResult(sim_time=self.sim_time)
        logger.info("Staggered FSI run to t=%g", time_span)
        if log is not None and self.steps_done == 0:
            # initial state; not a step, so kept out of result.records
            log.write(self.record())
        while self.sim_time < time_span - 1e-10 * max(1.0, time_span):
            try:
                record = self.step()
            except MeshBreakdownError as exc:
                logger.error("Mesh breakdown, stopping: %s", exc)
                result.breakdown = True
                result.failure = str(exc)
                break
            except ConvergenceFailure as exc:
                logger.error("Fatal convergence failure, stopping: %s", exc)
                result.failure = str(exc)
                break
            result.records.append(record)
            if log is not None:
                log.write(record)
            if exporter is not None:
                exporter(self, self.steps_done)
        result.sim_time = self.sim_time
        logger.info("Finished at t=%g after %d step(s)", self.sim_time, result.steps)
        return result
