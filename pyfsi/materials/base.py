"""Material properties and their assignment to mesh cells.

Classes
-------
Material
    Named property container used by the assemblers.
MaterialMap
    Per-cell look-up of material properties.

Functions
---------
assign
    Map materials to mesh subdomains (patches).
uniform
    Assign a single material to every cell.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from pyfsi.errors import ConfigurationError


class Material:
    """Generic material with named properties.

    Args:
        name: Human-readable material name.
        **kwargs: Arbitrary material properties.  Keys read by the
            assemblers:

            * ``youngs_modulus``: E (Pa).
            * ``poissons_ratio``: ν (-).
            * ``density``: ρ (kg/m³).
            * ``kinematic_viscosity``: ν_f (m²/s), fluids only.

    Example::

        steel = Material(name="steel", youngs_modulus=210e9,
                         poissons_ratio=0.3, density=7850.0)
        steel["density"]  # 7850.0
    """

    def __init__(self, name: str = "unnamed", **kwargs: Any) -> None:
        self.name = name
        self._props: dict[str, Any] = dict(kwargs)

    # dict-like access -----------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        return self._props[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._props[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._props

    def get(self, key: str, default: Any = None) -> Any:
        """Return property *key*, or *default* if absent."""
        return self._props.get(key, default)

    @property
    def properties(self) -> dict[str, Any]:
        return dict(self._props)

    # convenience accessors --------------------------------------------------

    @property
    def youngs_modulus(self) -> Any:
        return self._props.get("youngs_modulus")

    @property
    def poissons_ratio(self) -> Any:
        return self._props.get("poissons_ratio")

    @property
    def density(self) -> Any:
        return self._props.get("density")

    @property
    def lame_parameters(self) -> tuple[float, float]:
        """Lamé constants ``(λ, μ)`` from E and ν (plane strain)."""
        E, nu = float(self["youngs_modulus"]), float(self["poissons_ratio"])
        lam = E * nu / ((1 + nu) * (1 - 2 * nu))
        mu = E / (2 * (1 + nu))
        return lam, mu

    def with_properties(self, name: str | None = None, **kwargs: Any) -> "Material":
        """Copy with some properties replaced."""
        props = dict(self._props)
        props.update(kwargs)
        return Material(name=name or self.name, **props)

    def __repr__(self) -> str:
        props = ", ".join(f"{k}={v!r}" for k, v in self._props.items())
        return f"Material(name={self.name!r}, {props})"


class MaterialMap:
    """Mapping from mesh cells to :class:`Material` instances.

    Created by :func:`assign`.

    Attributes:
        materials: List of materials in index order.
        cell_material_index: Integer index per cell into *materials*.
    """

    def __init__(
        self,
        materials: list[Material],
        cell_material_index: np.ndarray,
    ) -> None:
        self.materials = materials
        self.cell_material_index = np.asarray(cell_material_index, dtype=int)

    @property
    def n_cells(self) -> int:
        return len(self.cell_material_index)

    def cell_property(self, key: str) -> np.ndarray:
        """Return property *key* for every cell, shape ``(n_cells,)``.

        Raises:
            KeyError: If a material used by some cell lacks *key*.
        """
        out = np.empty(self.n_cells, dtype=float)
        for i, mat in enumerate(self.materials):
            mask = self.cell_material_index == i
            if not mask.any():
                continue
            if key not in mat:
                raise KeyError(f"Material {mat.name!r} has no property {key!r}.")
            out[mask] = float(mat[key])
        return out

    def __repr__(self) -> str:
        names = [m.name for m in self.materials]
        return f"MaterialMap(materials={names}, n_cells={self.n_cells})"


def assign(
    mesh: Any,
    mapping: dict[str, Material],
) -> MaterialMap:
    """Assign materials to mesh cells based on subdomain (patch) names.

    Args:
        mesh: A :class:`~pyfsi.geometry.mesh.Mesh` instance.
        mapping: Subdomain name (or ``"default"`` for all remaining
            cells) to :class:`Material`.

    Returns:
        A :class:`MaterialMap`.

    Raises:
        ConfigurationError: If a name is not a subdomain of the mesh, or
            some cells end up without material.
    """
    mat_list: list[Material] = []
    cell_idx = np.full(mesh.n_cells, -1, dtype=int)

    if "default" in mapping:
        mat_list.append(mapping["default"])
        cell_idx[:] = 0

    for name, mat in mapping.items():
        if name == "default":
            continue
        if name not in mesh.subdomain_map:
            raise ConfigurationError(
                f"Subdomain '{name}' not found in mesh.  "
                f"Available: {list(mesh.subdomain_map.keys())}"
            )
        cell_idx[mesh.cell_tags == mesh.subdomain_map[name]] = len(mat_list)
        mat_list.append(mat)

    if (cell_idx < 0).any():
        raise ConfigurationError(
            f"{int((cell_idx < 0).sum())} cell(s) have no material; add a 'default' entry."
        )
    return MaterialMap(materials=mat_list, cell_material_index=cell_idx)


def uniform(mesh: Any, material: Material) -> MaterialMap:
    """Assign *material* to every cell of *mesh*."""
    return MaterialMap([material], np.zeros(mesh.n_cells, dtype=int))
