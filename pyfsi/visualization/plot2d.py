"""2-D plotting utilities.

Functions
---------
plot_field
    Plot a scalar field (or the magnitude of a vector field) on a mesh.
plot_streamlines
    Overlay velocity streamlines on a field plot.
plot_deformation
    Draw a mesh in its reference and deformed configurations.
plot_log
    Plot columns of a diagnostics log against simulated time.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import numpy as np


def _triangulation(mesh: Any, nodes: np.ndarray | None = None) -> Any:
    import matplotlib.tri as mtri

    nodes = mesh.nodes if nodes is None else nodes
    return mtri.Triangulation(nodes[:, 0], nodes[:, 1], mesh.cells)


def plot_field(
    mesh: Any,
    field: np.ndarray,
    contours: int = 20,
    streamlines: bool = False,
    colorbar: bool = True,
    title: str = "",
    ax: Any = None,
    cmap: str = "viridis",
) -> Any:
    """Plot a nodal field on a 2-D triangular mesh.

    Args:
        mesh: Computational mesh (current configuration).
        field: ``(n_nodes,)`` scalar values, or ``(n_nodes, 2)`` vectors
            whose magnitude is shown.
        contours: Number of contour levels.
        streamlines: Overlay streamlines of a vector *field*.
        colorbar: Show colour bar.
        title: Plot title.
        ax: Matplotlib axes (creates new figure if None).
        cmap: Matplotlib colour map name.

    Returns:
        Matplotlib axes.
    """
    import matplotlib.pyplot as plt

    if ax is None:
        fig, ax = plt.subplots(1, 1, figsize=(12, 4))

    values = np.asarray(field, dtype=float)
    scalar = values if values.ndim == 1 else np.linalg.norm(values, axis=1)
    triang = _triangulation(mesh)

    cs = ax.tricontourf(triang, scalar, levels=contours, cmap=cmap)
    if colorbar:
        plt.colorbar(cs, ax=ax, label=title)

    ax.set_aspect("equal")
    ax.set_title(title)
    ax.set_xlabel("x (m)")
    ax.set_ylabel("y (m)")

    if streamlines:
        if values.ndim != 2:
            raise ValueError("Streamlines need a vector field.")
        _add_streamlines(mesh, values, ax)

    return ax


def _add_streamlines(mesh: Any, velocity: np.ndarray, ax: Any) -> None:
    from scipy.interpolate import griddata

    x_min, x_max = mesh.nodes[:, 0].min(), mesh.nodes[:, 0].max()
    y_min, y_max = mesh.nodes[:, 1].min(), mesh.nodes[:, 1].max()
    xi = np.linspace(x_min, x_max, 60)
    yi = np.linspace(y_min, y_max, 40)
    Xi, Yi = np.meshgrid(xi, yi)

    vx = griddata(mesh.nodes, velocity[:, 0], (Xi, Yi), method="linear", fill_value=0.0)
    vy = griddata(mesh.nodes, velocity[:, 1], (Xi, Yi), method="linear", fill_value=0.0)
    ax.streamplot(xi, yi, vx, vy, color="white", linewidth=0.5, density=1.5)


def plot_streamlines(mesh: Any, velocity: np.ndarray, ax: Any = None) -> Any:
    """Standalone streamline plot of a nodal velocity field."""
    import matplotlib.pyplot as plt

    if ax is None:
        fig, ax = plt.subplots(1, 1, figsize=(12, 4))

    _add_streamlines(mesh, np.asarray(velocity, dtype=float), ax)
    ax.set_aspect("equal")
    ax.set_title("Streamlines")
    return ax


def plot_deformation(
    mesh: Any,
    displacement: np.ndarray,
    scale: float = 1.0,
    ax: Any = None,
    title: str = "Deformation",
) -> Any:
    """Reference mesh (grey) and mesh displaced by ``scale * displacement``."""
    import matplotlib.pyplot as plt

    if ax is None:
        fig, ax = plt.subplots(1, 1, figsize=(8, 6))

    disp = np.asarray(displacement, dtype=float)
    ax.triplot(_triangulation(mesh), color="0.75", linewidth=0.4)
    ax.triplot(_triangulation(mesh, mesh.nodes + scale * disp), color="k", linewidth=0.6)
    ax.set_aspect("equal")
    ax.set_title(title if scale == 1.0 else f"{title} (x{scale:g})")
    return ax


def plot_log(
    log: Mapping[str, np.ndarray],
    columns: Sequence[str] = ("drag", "lift", "disp_x"),
    axes: Any = None,
) -> Any:
    """Plot diagnostics-log columns over ``sim_time``.

    Args:
        log: Columns as returned by :func:`pyfsi.postprocess.log.read_log`.
        columns: Columns to plot, one panel each.
        axes: Sequence of axes (created if None).

    Returns:
        Array of matplotlib axes.
    """
    import matplotlib.pyplot as plt

    if axes is None:
        fig, axes = plt.subplots(len(columns), 1, figsize=(8, 2.5 * len(columns)), squeeze=False)
        axes = axes[:, 0]

    for ax, name in zip(axes, columns):
        ax.plot(log["sim_time"], log[name], "b-", linewidth=1.2)
        ax.set_ylabel(name)
        ax.grid(True, alpha=0.3)
    axes[-1].set_xlabel("time (s)")
    return axes
