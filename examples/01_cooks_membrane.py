# ---
# jupyter:
#   jupytext:
#     text_representation:
#       extension: .py
#       format_name: percent
#       format_version: '1.3'
#   kernelspec:
#     display_name: Python 3
#     language: python
#     name: python3
# ---

# %% [markdown]
# # 01 — Cook's Membrane (Static, Geometrically Nonlinear)
#
# A tapered panel clamped on its left edge and sheared by a vertical
# traction on its right edge.  The Saint Venant–Kirchhoff law is solved
# with the Newton solver directly, using incremental loading.
#
# $$\nabla \cdot (\mathbf{F}\mathbf{S}) = \mathbf{0}, \qquad
# \mathbf{S} = \lambda\,\mathrm{tr}(\mathbf{E})\mathbf{I} + 2\mu\mathbf{E}$$

# %%
import numpy as np
from pyfsi import boundaries, discretization, geometry, materials, postprocess, solvers

# %% [markdown]
# ## 1. Domain and mesh

# %%
panel = geometry.Quadrilateral([(0, 0), (48, 44), (48, 60), (0, 44)])
mesh = geometry.Mesh.from_patches([panel], divisions=[(16, 16)], names=["panel"])
print(f"Mesh: {mesh.n_nodes} nodes, {mesh.n_cells} cells")

# %% [markdown]
# ## 2. Material and boundary conditions
#
# | Boundary | Condition                         |
# |----------|-----------------------------------|
# | West     | Clamped ($u_x = u_y = 0$)          |
# | East     | Shear traction $t_y = 6.25$ MPa    |

# %%
mat_map = materials.uniform(mesh, materials.cook_membrane)
clamp = [boundaries.Dirichlet(0, "west")]
shear = 625e4
num_load_steps = 4

# %% [markdown]
# ## 3. Incremental Newton solve

# %%
newton = solvers.NewtonSolver(solvers.NewtonOptions(abs_tol=1e-8, rel_tol=1e-9))
u = None
for step in range(1, num_load_steps + 1):
    load = shear * step / num_load_steps
    assembler = discretization.ElasticityAssembler(
        mesh, mat_map, clamp,
        tractions=[boundaries.Neumann(0, "east", (0.0, load))],
        material_law="saint_venant_kirchhoff",
    )
    if u is None:
        u = np.zeros(assembler.num_free_dofs)
    u, report = newton.solve(assembler, u, assembler.fixed_dofs())
    print(f"load {load:.3e}: {report}")
    if not report.converged:
        raise SystemExit("Newton did not converge")

displacement = assembler.construct_solution(u, assembler.fixed_dofs())
tip = postprocess.PointProbe((48.0, 60.0)).sample(mesh, displacement)
print(f"Top-right corner displacement: ux={tip[0]:.3f}, uy={tip[1]:.3f}")
print(f"Smallest Jacobian ratio: {assembler.check_solution(u, assembler.fixed_dofs()):.3f}")

# %% [markdown]
# ## 4. Output

# %%
from pyfsi import visualization
import matplotlib.pyplot as plt

field = assembler.construct_field(u, assembler.fixed_dofs(), "displacement")
postprocess.export_vtk(mesh, {"displacement": field}, "cooks.vtu")
visualization.plot_deformation(mesh, displacement, title="Cook's membrane")
plt.show()
