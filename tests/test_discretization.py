"""Tests for the finite-element assemblers."""

import numpy as np
import pytest

from pyfsi.boundaries import BoundaryKey, Dirichlet, FixedDofs, Neumann
from pyfsi.discretization import (
    DofMapper,
    ElasticityAssembler,
    MassAssembler,
    NavierStokesAssembler,
    p1_gradients,
)
from pyfsi.errors import ConfigurationError, MissingBoundaryData
from pyfsi.geometry import Mesh, Rectangle
from pyfsi.materials import Material, uniform
from pyfsi.solvers import LinearSolver, NewtonOptions, NewtonSolver


def _square(n=2, length=1.0, height=1.0):
    return Mesh.from_patches(
        [Rectangle.from_bounds(0.0, length, 0.0, height)], divisions=[(n, n)]
    )


def _solid(mesh, law="linear", traction=(0.0, 0.0), body=(0.0, 0.0)):
    material = Material("test", youngs_modulus=100.0, poissons_ratio=0.3, density=1.0)
    return ElasticityAssembler(
        mesh,
        uniform(mesh, material),
        [Dirichlet(0, "west")],
        body_force=body,
        tractions=[Neumann(0, "east", traction)],
        material_law=law,
    )


def _channel(n=3):
    mesh = Mesh.from_patches([Rectangle.from_bounds(0.0, 2.0, 0.0, 1.0)], divisions=[(2 * n, n)])
    conditions = [
        Dirichlet(0, "west", 0, 1.0),
        Dirichlet(0, "west", 1, 0.0),
        Dirichlet(0, "south", 1, 0.0),
        Dirichlet(0, "north", 1, 0.0),
    ]
    return NavierStokesAssembler(mesh, conditions, viscosity=0.1, density=1.0)


# ----------------------------------------------------------------------
# DOF numbering
# ----------------------------------------------------------------------

class TestDofMapper:
    def test_free_fixed_split(self):
        mesh = _square()
        dofs = DofMapper(mesh, [Dirichlet(0, "west")], 2)
        assert dofs.n_fixed == 6
        assert dofs.n_free == 12
        assert dofs.n_full == 18

    def test_single_component_condition(self):
        dofs = DofMapper(_square(), [Dirichlet(0, "south", 1)], 2)
        assert dofs.keys == [BoundaryKey(0, "south", 1)]
        assert dofs.n_fixed == 3

    def test_last_declaration_wins_at_corner(self):
        mesh = _square()
        dofs = DofMapper(mesh, [Dirichlet(0, "west", 0, 1.0), Dirichlet(0, "south", 0, 2.0)], 1)
        nodal = dofs.to_nodal(np.zeros(dofs.n_free), dofs.default_fixed_dofs())
        corner = int(np.argmin(np.linalg.norm(mesh.nodes, axis=1)))
        assert nodal[corner, 0] == pytest.approx(2.0)
        top_left = int(np.argmin(np.linalg.norm(mesh.nodes - [0.0, 1.0], axis=1)))
        assert nodal[top_left, 0] == pytest.approx(1.0)

    def test_missing_boundary_data(self):
        dofs = DofMapper(_square(), [Dirichlet(0, "west")], 2)
        fixed = dofs.default_fixed_dofs()
        del fixed[BoundaryKey(0, "west", 1)]
        with pytest.raises(MissingBoundaryData):
            dofs.fixed_vector(fixed)

    def test_wrong_length_rejected(self):
        dofs = DofMapper(_square(), [Dirichlet(0, "west")], 2)
        fixed = dofs.default_fixed_dofs()
        fixed[BoundaryKey(0, "west", 0)] = np.zeros(5)
        with pytest.raises(ConfigurationError):
            dofs.fixed_vector(fixed)

    def test_free_part_inverts_to_nodal(self):
        dofs = DofMapper(_square(), [Dirichlet(0, "west")], 2)
        free = np.arange(dofs.n_free, dtype=float)
        nodal = dofs.to_nodal(free, dofs.default_fixed_dofs())
        np.testing.assert_allclose(dofs.free_part(nodal), free)

    def test_free_vector_length_checked(self):
        dofs = DofMapper(_square(), [Dirichlet(0, "west")], 2)
        with pytest.raises(ConfigurationError):
            dofs.check_free(np.zeros(3))


class TestP1Gradients:
    def test_reference_triangle(self):
        nodes = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        areas, dNdx, dNdy = p1_gradients(nodes, np.array([[0, 1, 2]]))
        assert areas[0] == pytest.approx(0.5)
        np.testing.assert_allclose(dNdx[0], [-1.0, 1.0, 0.0])
        np.testing.assert_allclose(dNdy[0], [-1.0, 0.0, 1.0])

    def test_degenerate_cell(self):
        nodes = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]])
        with pytest.raises(ConfigurationError):
            p1_gradients(nodes, np.array([[0, 1, 2]]))


# ----------------------------------------------------------------------
# Elasticity
# ----------------------------------------------------------------------

class TestElasticity:
    def test_last_system_requires_assembly(self):
        asm = _solid(_square())
        with pytest.raises(ConfigurationError):
            asm.last_matrix()

    def test_assembly_is_repeatable(self):
        asm = _solid(_square(), traction=(1.0, 0.0))
        u = np.linspace(0.0, 0.01, asm.num_free_dofs)
        first = asm.assemble(u, asm.fixed_dofs())
        second = asm.assemble(u, asm.fixed_dofs())
        np.testing.assert_allclose(first.matrix.toarray(), second.matrix.toarray())
        np.testing.assert_allclose(first.rhs, second.rhs)
        np.testing.assert_allclose(asm.last_rhs(), second.rhs)

    def test_construct_field_includes_boundary(self):
        mesh = _square()
        asm = _solid(mesh)
        field = asm.construct_field(np.ones(asm.num_free_dofs), asm.fixed_dofs(), "displacement")
        assert field.name == "displacement"
        assert field.values.shape == (mesh.n_nodes, 2)
        west = mesh.side_nodes(0, "west")
        np.testing.assert_allclose(field.values[west], 0.0)
        assert np.count_nonzero(field.values) == asm.num_free_dofs

    def test_stiffness_symmetric(self):
        K = _solid(_square()).linear_stiffness()
        np.testing.assert_allclose(K.toarray(), K.toarray().T, atol=1e-12)

    def test_rigid_translation_free_of_stress(self):
        mesh = _square()
        K = _solid(mesh).linear_stiffness()
        shift = np.concatenate([np.ones(mesh.n_nodes), np.zeros(mesh.n_nodes)])
        np.testing.assert_allclose(K @ shift, 0.0, atol=1e-10)

    def test_constant_solve_balances_load(self):
        asm = _solid(_square(), traction=(1.0, 0.0))
        system = asm.assemble_constant()
        u = LinearSolver().solve(system.matrix, system.rhs)
        residual = asm.assemble(u, asm.fixed_dofs()).rhs
        np.testing.assert_allclose(residual, 0.0, atol=1e-10)
        assert u.max() > 0

    def test_traction_total(self):
        mesh = _square()
        asm = _solid(mesh, traction=(2.0, 0.0))
        f = asm.external_force()
        assert f[: mesh.n_nodes].sum() == pytest.approx(2.0)

    def test_svk_matches_linear_for_small_load(self):
        mesh = _square(n=3)
        lin = _solid(mesh, traction=(1e-4, 1e-4))
        svk = _solid(mesh, "saint_venant_kirchhoff", traction=(1e-4, 1e-4))
        system = lin.assemble_constant()
        u_lin = LinearSolver().solve(system.matrix, system.rhs)
        u_svk, report = NewtonSolver(NewtonOptions(abs_tol=1e-14)).solve(
            svk, np.zeros(svk.num_free_dofs), svk.fixed_dofs()
        )
        assert report.converged
        np.testing.assert_allclose(u_svk, u_lin, rtol=1e-3, atol=1e-10)

    def test_unknown_material_law(self):
        mesh = _square()
        with pytest.raises(ConfigurationError):
            ElasticityAssembler(mesh, uniform(mesh, Material("m", youngs_modulus=1.0,
                                                             poissons_ratio=0.3)),
                                material_law="neo_hookean")

    def test_check_solution_detects_folding(self):
        mesh = _square()
        asm = _solid(mesh)
        fixed = asm.fixed_dofs()
        assert asm.check_solution(np.zeros(asm.num_free_dofs), fixed) == pytest.approx(1.0)
        # push every free node far to the west, across the clamped edge
        nodal = np.zeros((mesh.n_nodes, 2))
        nodal[:, 0] = -3.0 * mesh.nodes[:, 0]
        free = asm.dofs.free_part(nodal)
        assert asm.check_solution(free, fixed) <= 0.0

    def test_local_stiffening_keeps_uniform_mesh(self):
        mesh = _square()
        plain = _solid(mesh).linear_stiffness().toarray()
        material = Material("m", youngs_modulus=100.0, poissons_ratio=0.3)
        stiff = ElasticityAssembler(
            mesh, uniform(mesh, material), [Dirichlet(0, "west")], local_stiffening=2.5
        ).linear_stiffness().toarray()
        # all cells share the same area, so the scaling factor is one
        np.testing.assert_allclose(stiff, plain)


# ----------------------------------------------------------------------
# Mass
# ----------------------------------------------------------------------

class TestMass:
    def test_total_mass(self):
        mesh = _square(length=2.0)
        M = MassAssembler(mesh, density=3.0).full_matrix()
        assert M.sum() == pytest.approx(3.0 * 2.0 * 2)

    def test_free_block_size(self):
        mesh = _square()
        system = MassAssembler(mesh, [Dirichlet(0, "west")]).assemble_constant()
        assert system.matrix.shape == (12, 12)

    def test_elimination_term(self):
        mesh = _square()
        mass = MassAssembler(mesh, [Dirichlet(0, "west")])
        np.testing.assert_allclose(mass.eliminate_fixed_dofs(mass.fixed_dofs()), 0.0)
        fixed = FixedDofs({key: np.ones(3) for key in mass.dofs.keys})
        assert mass.eliminate_fixed_dofs(fixed).sum() < 0.0

    def test_density_from_material_map(self):
        mesh = _square()
        materials = uniform(mesh, Material("m", density=5.0))
        mass = MassAssembler(mesh, density=materials, n_components=1)
        assert mass.full_matrix().sum() == pytest.approx(5.0)


# ----------------------------------------------------------------------
# Navier-Stokes
# ----------------------------------------------------------------------

class TestNavierStokes:
    def test_layout(self):
        ns = _channel()
        n = ns.mesh.n_nodes
        assert ns.num_free_dofs == ns.num_velocity_dofs + n
        system = ns.assemble(np.zeros(ns.num_free_dofs), ns.fixed_dofs())
        assert system.matrix.shape == (ns.num_free_dofs, ns.num_free_dofs)

    def test_invalid_parameters(self):
        mesh = _square()
        with pytest.raises(ConfigurationError):
            NavierStokesAssembler(mesh, viscosity=0.0)
        with pytest.raises(ConfigurationError):
            NavierStokesAssembler(mesh, linearization="picard")

    @pytest.mark.parametrize("linearization", ["oseen", "newton_next"])
    def test_uniform_flow_is_discrete_solution(self, linearization):
        ns = _channel()
        n = ns.mesh.n_nodes
        uniform_flow = np.column_stack([np.ones(n), np.zeros(n)])
        system = ns.assemble(
            ns.free_vector(uniform_flow), ns.fixed_dofs(),
            linearization=linearization, transport_velocity=uniform_flow,
        )
        x = LinearSolver().solve(system.matrix, system.rhs)
        np.testing.assert_allclose(ns.construct_solution(x, ns.fixed_dofs()), uniform_flow, atol=1e-8)
        np.testing.assert_allclose(ns.construct_pressure(x), 0.0, atol=1e-8)

    def test_stokes_system(self):
        ns = _channel()
        system = ns.assemble_constant()
        x = LinearSolver().solve(system.matrix, system.rhs)
        velocity = ns.construct_solution(x, ns.fixed_dofs())
        np.testing.assert_allclose(velocity[:, 0], 1.0, atol=1e-8)

    def test_transport_velocity_shape_checked(self):
        ns = _channel()
        with pytest.raises(ConfigurationError):
            ns.assemble(np.zeros(ns.num_free_dofs), ns.fixed_dofs(),
                        transport_velocity=np.zeros((3, 2)))

    def test_free_vector_roundtrip(self):
        ns = _channel()
        n = ns.mesh.n_nodes
        velocity = np.column_stack([np.ones(n), np.zeros(n)])
        free = ns.free_vector(velocity, np.arange(n, dtype=float))
        np.testing.assert_allclose(ns.construct_solution(free, ns.fixed_dofs()), velocity)
        np.testing.assert_allclose(ns.construct_pressure(free), np.arange(n))

    def test_force_of_uniform_pressure(self):
        ns = _channel()
        n = ns.mesh.n_nodes
        free = ns.free_vector(np.zeros((n, 2)), np.ones(n))
        fixed = FixedDofs({key: np.zeros(len(nodes)) for key, nodes in ns.dofs.key_nodes.items()})
        drag, lift = ns.compute_force(free, fixed, [(0, "south")])
        # p = 1 on a bottom wall of length 2 pushes the wall downwards
        assert drag == pytest.approx(0.0, abs=1e-12)
        assert lift == pytest.approx(-2.0)

    def test_force_of_uniform_flow_vanishes(self):
        ns = _channel()
        n = ns.mesh.n_nodes
        free = ns.free_vector(np.column_stack([np.ones(n), np.zeros(n)]))
        force = ns.compute_force(free, ns.fixed_dofs(), [(0, "south"), (0, "north")])
        np.testing.assert_allclose(force, 0.0, atol=1e-12)
