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
# # 02 — Vibrating Cantilever (Linear Elastodynamics)
#
# A cantilever clamped on its west side is suddenly loaded by a
# vertical body force and oscillates around its static deflection.
# The θ = 0.5 scheme conserves the energy of the undamped system.
#
# $$\rho\,\ddot{\mathbf{u}} = \nabla \cdot \boldsymbol{\sigma} + \mathbf{b}$$

# %%
import numpy as np
from pyfsi import boundaries, discretization, geometry, materials, postprocess, time

# %% [markdown]
# ## 1. Domain, material, boundary conditions

# %%
beam = geometry.Rectangle(Lx=10.0, Ly=1.0, origin=(0, 0))
mesh = geometry.Mesh.from_patches([beam], divisions=[(40, 4)], names=["beam"])

material = materials.Material(
    name="soft", youngs_modulus=200.0, poissons_ratio=0.33, density=1.0
)
mat_map = materials.uniform(mesh, material)
clamp = [boundaries.Dirichlet(0, "west")]

# %% [markdown]
# ## 2. Integrator

# %%
stiffness = discretization.ElasticityAssembler(mesh, mat_map, clamp, body_force=(0.0, 0.1))
mass = discretization.MassAssembler(mesh, clamp, density=mat_map)
integrator = time.ElasticTimeIntegrator(
    stiffness, mass, time.IntegratorOptions(scheme="implicit_linear", theta=0.5)
)

# %% [markdown]
# ## 3. Time loop: 100 steps over 10 s

# %%
probe = postprocess.PointProbe((10.0, 0.5))
collection = postprocess.TimeCollection("beam")
history = []
for t, dt in time.Stepper.from_steps(100, 10.0):
    integrator.make_time_step(dt)
    disp = integrator.construct_solution()
    history.append((t, probe.sample(mesh, disp)[1]))
    postprocess.write_time_step(
        {"displacement": postprocess.PhysicalField(mesh, disp, "displacement")},
        "beam", collection, integrator.time_steps, time=t,
    )
collection.save()

history = np.array(history)
print(f"Tip deflection range: [{history[:, 1].min():.4f}, {history[:, 1].max():.4f}]")

# %%
import matplotlib.pyplot as plt

fig, ax = plt.subplots(figsize=(8, 3))
ax.plot(history[:, 0], history[:, 1], "b-")
ax.set_xlabel("time (s)")
ax.set_ylabel("tip $u_y$")
ax.grid(True, alpha=0.3)
plt.tight_layout()
plt.show()
