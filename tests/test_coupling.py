"""Tests for the coupling module."""

from types import SimpleNamespace

import numpy as np
import pytest

from pyfsi.boundaries import BoundaryKey, Dirichlet, FixedDofs, Hydrograph
from pyfsi.coupling import (
    AleCoupling,
    CouplingLink,
    MeshMotion,
    Monitor,
    StaggeredFSI,
    StepPolicy,
)
from pyfsi.discretization import ElasticityAssembler, MassAssembler
from pyfsi.errors import ConfigurationError, ConvergenceFailure, MeshBreakdownError
from pyfsi.geometry import Mesh, Rectangle
from pyfsi.materials import Material, pseudo_solid, uniform
from pyfsi.postprocess import DiagnosticsLog, read_log
from pyfsi.solvers import ConvergenceReport
from pyfsi.time import ElasticTimeIntegrator, IntegratorOptions

# the interface side is declared last so that it owns the corners
SIDES = ("east", "south", "north", "west")


def _beam(law="linear", max_iters=50, tol=1e-10):
    """Cantilever on [0, 4] x [0, 1], clamped at x = 0, loaded by gravity."""
    mesh = Mesh.from_patches([Rectangle.from_bounds(0.0, 4.0, 0.0, 1.0)], divisions=[(4, 2)])
    material = Material("beam", youngs_modulus=200.0, poissons_ratio=0.3, density=1.0)
    conditions = [Dirichlet(0, "west")]
    stiffness = ElasticityAssembler(
        mesh, uniform(mesh, material), conditions, body_force=(0.0, -0.01), material_law=law
    )
    scheme = "implicit_linear" if law == "linear" else "implicit_nonlinear"
    options = IntegratorOptions(scheme=scheme, theta=1.0, max_iters=max_iters,
                                abs_tol=tol, rel_tol=tol)
    return ElasticTimeIntegrator(stiffness, MassAssembler(mesh, conditions), options)


def _ale_mesh():
    """Block on [4, 5] x [0, 1] whose west side touches the beam tip."""
    return Mesh.from_patches([Rectangle.from_bounds(4.0, 5.0, 0.0, 1.0)], divisions=[(2, 2)])


def _mesh_motion():
    mesh = _ale_mesh()
    conditions = [Dirichlet(0, side) for side in SIDES]
    return MeshMotion(ElasticityAssembler(mesh, uniform(mesh, pseudo_solid), conditions))


class _FluidSpy:
    """Stand-in for the flow integrator that records what the coupler does."""

    def __init__(self, mesh, converge=True, fixed=None):
        self.stiffness = SimpleNamespace(mesh=mesh, dofs=SimpleNamespace(n_components=2))
        self.ale_coupling = None
        self.num_free_dofs = 3 * mesh.n_nodes
        self.number_iterations = 0
        self.last_report = None
        self.converged = True
        self.calls = []
        self._converge = converge
        self._fixed = fixed if fixed is not None else FixedDofs()
        self.initial = None

    def enable_ale_coupling(self, coupling):
        self.ale_coupling = coupling

    def all_fixed_dofs(self):
        return self._fixed.copy()

    def set_all_fixed_dofs(self, fixed):
        self._fixed = fixed.copy()

    def set_initial_fixed_dofs(self, fixed):
        self.initial = fixed.copy()
        self._fixed = fixed.copy()

    def set_fixed_dofs(self, patch, side, values, component=None):
        self.calls.append(("set", patch, side))

    def save_state(self):
        self.calls.append("save")

    def recover_state(self):
        self.calls.append("recover")

    def make_time_step(self, dt, ale=False):
        self.calls.append(("step", ale))
        self.number_iterations = 1
        self.converged = self._converge


class _FoldingMeshMotion:
    """Mesh motion whose trial mesh is always folded."""

    def __init__(self, mesh):
        self.mesh = mesh
        self.num_free_dofs = 1
        self.calls = []

    def begin(self):
        self.calls.append("begin")

    def add_boundary_increment(self, patch, side, increment):
        self.calls.append("increment")

    def solve(self):
        return ConvergenceReport(True, 1, 0.0)

    def min_jacobian(self):
        return -0.5

    def rollback(self):
        self.calls.append("rollback")

    def commit(self):
        self.calls.append("commit")


TIP_LINK = CouplingLink(0, "east", 0, "west")
WHOLE = CouplingLink(0, None, 0, None)


def _coupled(beam=None, mm=None, fluid=None, policy=None, **kwargs):
    beam = beam or _beam()
    mm = mm or _mesh_motion()
    fluid = fluid or _FluidSpy(mm.mesh.copy())
    policy = policy or StepPolicy(time_step=0.1)
    return StaggeredFSI(beam, mm, fluid, [TIP_LINK], [], [WHOLE], policy, **kwargs)


# ----------------------------------------------------------------------
# Links
# ----------------------------------------------------------------------

class TestCouplingLink:
    def test_matching_traces(self):
        TIP_LINK.check(_beam().stiffness.mesh, _ale_mesh())

    def test_position_mismatch(self):
        shifted = Mesh.from_patches([Rectangle.from_bounds(4.5, 5.0, 0.0, 1.0)], divisions=[(2, 2)])
        with pytest.raises(ConfigurationError):
            TIP_LINK.check(_beam().stiffness.mesh, shifted)

    def test_count_mismatch(self):
        finer = Mesh.from_patches([Rectangle.from_bounds(4.0, 5.0, 0.0, 1.0)], divisions=[(2, 4)])
        with pytest.raises(ConfigurationError):
            TIP_LINK.check(_beam().stiffness.mesh, finer)

    def test_transfer_orders_like_target(self):
        beam_mesh = _beam().stiffness.mesh
        values = beam_mesh.nodes.copy()
        trace = TIP_LINK.transfer(beam_mesh, _ale_mesh(), values)
        np.testing.assert_allclose(trace[:, 0], 4.0)
        np.testing.assert_allclose(trace[:, 1], [0.0, 0.5, 1.0])

    def test_side_and_patch_not_mixed(self):
        with pytest.raises(ConfigurationError):
            CouplingLink(0, "east", 0, None)


class TestAleCoupling:
    def test_map_to_linked_patches(self):
        ale_mesh = _ale_mesh()
        coupling = AleCoupling(ale_mesh, [WHOLE])
        values = np.arange(ale_mesh.n_nodes, dtype=float)
        np.testing.assert_allclose(coupling.map_to(ale_mesh.copy(), values), values)

    def test_unlinked_nodes_are_zero(self):
        ale_mesh = _ale_mesh()
        fluid_mesh = Mesh.from_patches(
            [Rectangle.from_bounds(4.0, 5.0, 0.0, 1.0), Rectangle.from_bounds(5.0, 6.0, 0.0, 1.0)],
            divisions=[(2, 2), (2, 2)],
        )
        coupling = AleCoupling(ale_mesh, [WHOLE])
        mapped = coupling.map_to(fluid_mesh, np.ones(ale_mesh.n_nodes))
        assert mapped.sum() == pytest.approx(ale_mesh.n_nodes)

    def test_mesh_velocity_shape(self):
        coupling = AleCoupling(_ale_mesh(), [WHOLE])
        with pytest.raises(ConfigurationError):
            coupling.set_mesh_velocity(np.zeros((2, 2)))

    def test_side_links_rejected(self):
        with pytest.raises(ConfigurationError):
            AleCoupling(_ale_mesh(), [TIP_LINK])


# ----------------------------------------------------------------------
# Mesh motion
# ----------------------------------------------------------------------

class TestMeshMotion:
    def _lift_west(self, mm, amount=0.1):
        n_side = len(mm.mesh.side_nodes(0, "west"))
        mm.begin()
        mm.add_boundary_increment(0, "west", np.column_stack([np.zeros(n_side),
                                                              np.full(n_side, amount)]))
        return mm.solve()

    def test_single_linear_iteration(self):
        mm = _mesh_motion()
        report = self._lift_west(mm)
        assert report.converged
        assert report.iterations == 1
        assert mm.min_jacobian() > 0

    def test_commit_accumulates(self):
        mm = _mesh_motion()
        west = mm.mesh.side_nodes(0, "west")
        for _ in range(2):
            self._lift_west(mm)
            mm.commit()
        np.testing.assert_allclose(mm.displacement()[west, 1], 0.2)
        assert mm.l2_norm() > 0

    def test_rollback_keeps_committed(self):
        mm = _mesh_motion()
        self._lift_west(mm)
        mm.rollback()
        np.testing.assert_allclose(mm.displacement(), 0.0)
        with pytest.raises(ConfigurationError):
            mm.trial_displacement()

    def test_revert_undoes_commit(self):
        mm = _mesh_motion()
        self._lift_west(mm)
        mm.commit()
        mm.revert()
        np.testing.assert_allclose(mm.displacement(), 0.0)
        with pytest.raises(ConfigurationError):
            mm.revert()

    def test_increment_requires_dirichlet_side(self):
        mesh = _ale_mesh()
        mm = MeshMotion(ElasticityAssembler(mesh, uniform(mesh, pseudo_solid),
                                            [Dirichlet(0, "east")]))
        mm.begin()
        with pytest.raises(ConfigurationError):
            mm.add_boundary_increment(0, "west", np.zeros((3, 2)))

    def test_large_shift_folds_mesh(self):
        mm = _mesh_motion()
        n_side = len(mm.mesh.side_nodes(0, "west"))
        mm.begin()
        mm.add_boundary_increment(0, "west", np.column_stack([np.full(n_side, 3.0),
                                                              np.zeros(n_side)]))
        mm.solve()
        assert mm.min_jacobian() <= 0


# ----------------------------------------------------------------------
# Step policy
# ----------------------------------------------------------------------

class TestStepPolicy:
    def test_warm_up_steps(self):
        policy = StepPolicy(time_step=0.01, warm_up=True)
        assert policy.step_size(0.0) == pytest.approx(0.1)
        assert policy.step_size(1.95) == pytest.approx(0.1)
        assert policy.step_size(2.0) == pytest.approx(0.01)

    def test_no_warm_up(self):
        assert StepPolicy(time_step=0.01).step_size(0.0) == pytest.approx(0.01)

    def test_default_cosine_ramp(self):
        policy = StepPolicy(time_step=0.01)
        assert policy.ramp_factor(0.0) == pytest.approx(0.0)
        assert policy.ramp_factor(1.0) == pytest.approx(0.5)
        assert policy.ramp_factor(2.0) == pytest.approx(1.0)
        assert policy.ramp_factor(5.0) == pytest.approx(1.0)

    def test_custom_ramp(self):
        policy = StepPolicy(time_step=0.01, ramp=Hydrograph([0, 1], [0.0, 1.0]))
        assert policy.ramp_factor(0.25) == pytest.approx(0.25)

    def test_invalid(self):
        with pytest.raises(ConfigurationError):
            StepPolicy(time_step=0.0)
        with pytest.raises(ConfigurationError):
            StepPolicy(time_step=0.1, ramp_time=-1.0)


# ----------------------------------------------------------------------
# Staggered coupling
# ----------------------------------------------------------------------

class TestStaggeredFSI:
    def test_validate(self):
        assert _coupled().validate() == []

    def test_validate_reports_mismatch(self):
        fsi = _coupled()
        fsi.structure_to_mesh.append(CouplingLink(0, "north", 0, "west"))
        issues = fsi.validate()
        assert len(issues) == 1

    def test_step_moves_fluid_mesh(self):
        fsi = _coupled()
        reference = fsi.fluid_mesh.nodes.copy()
        record = fsi.step()
        assert fsi.steps_done == 1
        assert record.sim_time == pytest.approx(0.1)
        assert fsi.fluid.calls[-1] == ("step", True)
        delta = fsi.mesh_motion.displacement()
        np.testing.assert_allclose(fsi.fluid_mesh.nodes, reference + delta)
        np.testing.assert_allclose(fsi.ale.mesh_velocity, delta / 0.1)
        # the mesh follows the tip of the beam
        tip = fsi.structure_mesh.side_nodes(0, "east")
        west = fsi.mesh_motion.mesh.side_nodes(0, "west")
        np.testing.assert_allclose(delta[west], fsi.structure.construct_solution()[tip])
        assert delta[west, 1].min() < 0

    def test_interface_velocity_handed_to_fluid(self):
        beam, mm = _beam(), _mesh_motion()
        fluid = _FluidSpy(mm.mesh.copy())
        fsi = StaggeredFSI(beam, mm, fluid, [TIP_LINK], [CouplingLink(0, "west", 0, "west")],
                           [WHOLE], StepPolicy(0.1))
        fsi.step()
        assert ("set", 0, "west") in fluid.calls

    def test_breakdown_stops_before_flow(self):
        mesh = _ale_mesh()
        mm = _FoldingMeshMotion(mesh)
        fluid = _FluidSpy(mesh.copy())
        fsi = _coupled(mm=mm, fluid=fluid)
        with pytest.raises(MeshBreakdownError) as info:
            fsi.step()
        assert info.value.min_jacobian == pytest.approx(-0.5)
        assert not any(isinstance(c, tuple) and c[0] == "step" for c in fluid.calls)
        assert "rollback" in mm.calls
        assert "commit" not in mm.calls
        np.testing.assert_allclose(fsi.structure.solution_vector, 0.0)
        assert fsi.structure.time_steps == 0
        assert fsi.sim_time == 0.0

    def test_run_records_breakdown(self):
        mesh = _ale_mesh()
        fsi = _coupled(mm=_FoldingMeshMotion(mesh), fluid=_FluidSpy(mesh.copy()))
        result = fsi.run(time_span=1.0)
        assert result.breakdown
        assert not result.completed
        assert result.steps == 0
        assert result.sim_time == 0.0

    def test_structure_failure_rolls_back(self):
        beam = _beam("saint_venant_kirchhoff", max_iters=1, tol=0.0)
        fsi = _coupled(beam=beam)
        with pytest.raises(ConvergenceFailure) as info:
            fsi.step()
        # the failed report survives the rollback of the structure
        assert not info.value.report.converged
        assert info.value.report.iterations == 1
        assert beam.last_report is None
        assert beam.time_steps == 0
        np.testing.assert_allclose(fsi.mesh_motion.displacement(), 0.0)
        assert fsi.fluid.calls == ["save"]

    def test_flow_failure_rolls_everything_back(self):
        mm = _mesh_motion()
        fluid = _FluidSpy(mm.mesh.copy(), converge=False)
        fsi = _coupled(mm=mm, fluid=fluid)
        reference = fsi.fluid_mesh.nodes.copy()
        with pytest.raises(ConvergenceFailure):
            fsi.step()
        assert fluid.calls[-1] == "recover"
        np.testing.assert_allclose(fsi.fluid_mesh.nodes, reference, atol=1e-14)
        np.testing.assert_allclose(mm.displacement(), 0.0)
        assert fsi.structure.time_steps == 0
        assert fsi.steps_done == 0
        np.testing.assert_allclose(fsi.ale.mesh_velocity, 0.0)

    def test_run_to_end(self):
        fsi = _coupled(monitor=Monitor(displacement_point=(4.0, 1.0)))
        result = fsi.run(time_span=0.3)
        assert result.completed
        assert result.steps == 3
        assert result.sim_time == pytest.approx(0.3)
        assert result.records[-1].disp_y < 0
        assert result.records[-1].beam_iter == 1
        assert result.records[-1].flow_iter == 1
        assert result.records[-1].beam_time >= result.records[0].beam_time

    def test_log_starts_with_initial_state(self, tmp_path):
        fsi = _coupled(monitor=Monitor(displacement_point=(4.0, 1.0)))
        with DiagnosticsLog(tmp_path / "log.txt") as log:
            result = fsi.run(time_span=0.2, log=log)
        data = read_log(tmp_path / "log.txt")
        np.testing.assert_allclose(data["sim_time"], [0.0, 0.1, 0.2])
        assert data["disp_y"][0] == 0.0
        assert data["beam_iter"][0] == 0
        assert [r.sim_time for r in result.records] == pytest.approx([0.1, 0.2])

        # a resumed run does not repeat the initial line
        with DiagnosticsLog(tmp_path / "log.txt", append=True) as log:
            fsi.run(time_span=0.3, log=log)
        np.testing.assert_allclose(read_log(tmp_path / "log.txt")["sim_time"], [0.0, 0.1, 0.2, 0.3])

    def test_warm_up_steps_used(self):
        fsi = _coupled(policy=StepPolicy(time_step=0.05, warm_up=True, warm_up_time=0.2,
                                         warm_up_step=0.1))
        result = fsi.run(time_span=0.3)
        times = [r.sim_time for r in result.records]
        np.testing.assert_allclose(times, [0.1, 0.2, 0.25, 0.3])

    def test_ramped_inflow(self):
        key = BoundaryKey(0, "west", 0)
        mm = _mesh_motion()
        fluid = _FluidSpy(mm.mesh.copy(), fixed=FixedDofs({
            key: np.full(3, 2.0), BoundaryKey(0, "west", 1): np.zeros(3),
        }))
        fsi = _coupled(mm=mm, fluid=fluid, ramped_sides=[(0, "west")],
                       policy=StepPolicy(time_step=0.5, ramp_time=1.0))
        np.testing.assert_allclose(fluid.initial[key], 0.0)
        fsi.step()
        np.testing.assert_allclose(fluid.all_fixed_dofs()[key], 1.0)
        fsi.step()
        np.testing.assert_allclose(fluid.all_fixed_dofs()[key], 2.0)
