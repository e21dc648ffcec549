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
# # 03 — One-Way FSI: Flap in a Channel
#
# Structure → mesh motion → fluid, once per macro step.  The flap is
# driven by a body force; the flow sees its motion through the moving
# mesh (ALE).  The same setup is available from the command line:
#
#     python -m pyfsi.examples.perpendicular_flap.run --warm-up

# %%
from pyfsi import postprocess, visualization
from pyfsi.examples.perpendicular_flap.run import FlapConfig, build_problem

# %% [markdown]
# ## 1. Setup
#
# Coarse warm-up steps of 0.1 s while the inflow ramps up over 2 s.

# %%
config = FlapConfig(time_step=0.05, time_span=3.0, warm_up=True, num_points=0)
fsi = build_problem(config)
print(fsi)

# %% [markdown]
# ## 2. Run

# %%
with postprocess.DiagnosticsLog("flap_log.txt") as log:
    result = fsi.run(config.time_span, log=log)
print(f"{result.steps} steps, t = {result.sim_time:.2f}, failure: {result.failure}")

# %% [markdown]
# ## 3. Diagnostics

# %%
import matplotlib.pyplot as plt

data = postprocess.read_log("flap_log.txt")
visualization.plot_log(data, columns=("drag", "lift", "disp_x", "ale_norm"))
visualization.plot_field(
    fsi.fluid_mesh, fsi.fluid.construct_solution(), title="|u|", streamlines=True
)
plt.show()
