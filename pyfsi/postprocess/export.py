"""Export of nodal fields to Paraview-readable files.

Functions
---------
export_vtk
    Write one or more fields on a mesh to a VTU file.
write_time_step
    Export the fields of one time step and register them in a collection.
write_deformation
    Export a mesh displaced by a displacement field.

Classes
-------
TimeCollection
    ``.pvd`` index of a series of time-step files.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import numpy as np

logger = logging.getLogger(__name__)


def _meshio() -> Any:
    try:
        import meshio
    except ImportError as exc:
        raise ImportError(
            "meshio is required for VTK export.  "
            "Install with: pip install meshio"
        ) from exc
    return meshio


def _points(nodes: np.ndarray) -> np.ndarray:
    if nodes.shape[1] == 2:
        return np.column_stack([nodes, np.zeros(len(nodes))])
    return nodes


def _point_data(fields: Mapping[str, Any], n_nodes: int) -> dict[str, np.ndarray]:
    point_data = {}
    for name, field in fields.items():
        values = np.asarray(getattr(field, "values", field), dtype=float)
        if values.shape[0] != n_nodes:
            raise ValueError(f"Field {name!r} does not match the mesh ({values.shape[0]} values).")
        if values.ndim == 2 and values.shape[1] == 2:
            # Paraview expects 3-component vectors
            values = np.column_stack([values, np.zeros(n_nodes)])
        point_data[name] = values
    return point_data


def export_vtk(mesh: Any, fields: Mapping[str, Any], filename: str | Path) -> None:
    """Write *fields* (arrays or :class:`PhysicalField`) on *mesh* to VTU.

    Args:
        mesh: Mesh in its current (possibly moved) configuration.
        fields: Field name to nodal values.
        filename: Output file path.
    """
    meshio = _meshio()
    m = meshio.Mesh(
        points=_points(mesh.nodes),
        cells=[("triangle", mesh.cells)],
        point_data=_point_data(fields, mesh.n_nodes),
        cell_data={"patch": [mesh.cell_tags.astype(int)]},
    )
    m.write(str(filename))


class TimeCollection:
    """Paraview collection (``.pvd``) of time-step files.

    Args:
        basename: Path prefix; the index is written to ``basename.pvd``.
    """

    def __init__(self, basename: str | Path) -> None:
        self.basename = Path(basename)
        self.parts: list[tuple[float, str]] = []

    def add_part(self, filename: str | Path, time: float) -> None:
        """Register *filename* (relative paths are kept as given)."""
        self.parts.append((float(time), Path(filename).name))

    def save(self) -> Path:
        """Write the ``.pvd`` index and return its path."""
        path = self.basename.with_suffix(".pvd")
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = [
            '<?xml version="1.0"?>',
            '<VTKFile type="Collection" version="0.1">',
            "  <Collection>",
        ]
        for time, name in self.parts:
            lines.append(f'    <DataSet timestep="{time:.10g}" part="0" file="{name}"/>')
        lines += ["  </Collection>", "</VTKFile>", ""]
        path.write_text("\n".join(lines), encoding="utf-8")
        return path

    def __len__(self) -> int:
        return len(self.parts)


def write_time_step(
    fields: Mapping[str, Any],
    basename: str | Path,
    collection: TimeCollection,
    step: int,
    num_points: int = 1,
    time: float | None = None,
) -> Path | None:
    """Export the fields of one time step.

    All fields must live on the same mesh (taken from the first
    :class:`PhysicalField`).  Writes ``{basename}_{step}.vtu`` and adds it
    to *collection*.

    Args:
        fields: Field name to :class:`PhysicalField`.
        basename: Path prefix of the step files.
        collection: Collection receiving the file.
        step: Step number (also the time stamp unless *time* is given).
        num_points: ``0`` disables export; any positive value writes the
            fields at the mesh nodes.
        time: Time stamp of the step.

    Returns:
        The file written, or ``None`` when export is disabled.
    """
    if num_points <= 0:
        return None
    if not fields:
        raise ValueError("Nothing to export.")
    mesh = next(iter(fields.values())).mesh
    filename = Path(f"{basename}_{step}.vtu")
    filename.parent.mkdir(parents=True, exist_ok=True)
    export_vtk(mesh, fields, filename)
    collection.add_part(filename, step if time is None else time)
    logger.debug("Wrote %s", filename)
    return filename


def write_deformation(
    mesh: Any,
    displacement: np.ndarray,
    basename: str | Path,
    collection: TimeCollection,
    step: int,
    time: float | None = None,
) -> Path:
    """Export *mesh* moved by *displacement* (e.g. the mesh-motion field)."""
    moved = mesh.copy()
    moved.move_nodes(displacement)
    filename = Path(f"{basename}_{step}.vtu")
    filename.parent.mkdir(parents=True, exist_ok=True)
    export_vtk(moved, {"displacement": displacement}, filename)
    collection.add_part(filename, step if time is None else time)
    return filename
