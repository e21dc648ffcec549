"""Boundary condition base classes.

Classes
-------
BoundaryKey
    Identifies one component of a field on one side of one patch.
BoundaryCondition
    Abstract base for all BC types.
Dirichlet
    Fixed-value (essential) boundary condition on a patch side.
Neumann
    Surface traction (natural) boundary condition on a patch side.
FixedDofs
    Per-boundary prescribed values, replaced only as whole entries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Any, Callable, Iterator

import numpy as np
from numpy.typing import ArrayLike

from pyfsi.errors import ConfigurationError


@dataclass(frozen=True, order=True)
class BoundaryKey:
    """Address of a block of fixed DOFs.

    Attributes:
        patch: Patch index.
        side: Side name (``"west"``, ``"east"``, ``"south"``, ``"north"``).
        component: Field component.
    """

    patch: int
    side: str
    component: int


class BoundaryCondition(ABC):
    """Abstract boundary condition attached to a patch side."""

    patch: int
    side: str

    @abstractmethod
    def evaluate(self, coords: np.ndarray, component: int) -> np.ndarray:
        """Evaluate the condition at the side nodes for one component.

        Args:
            coords: Side node coordinates, shape ``(N, 2)``.
            component: Field component.

        Returns:
            Array of shape ``(N,)``.
        """


class Dirichlet(BoundaryCondition):
    """Fixed-value (Dirichlet / essential) boundary condition.

    Args:
        patch: Patch index.
        side: Side name.
        component: Field component, or ``None`` for every component.
        value: Scalar, array of side-node values, or callable
            ``f(coords)`` returning ``(N,)`` or ``(N, n_components)``.
    """

    def __init__(
        self,
        patch: int,
        side: str,
        component: int | None = None,
        value: float | ArrayLike | Callable = 0.0,
    ) -> None:
        self.patch = int(patch)
        self.side = side
        self.component = component
        self.value = value

    def components(self, n_components: int) -> list[int]:
        """Components constrained by this condition."""
        if self.component is None:
            return list(range(n_components))
        if not 0 <= self.component < n_components:
            raise ConfigurationError(
                f"Component {self.component} out of range for a field with "
                f"{n_components} components."
            )
        return [self.component]

    def keys(self, n_components: int) -> list[BoundaryKey]:
        """Boundary keys declared by this condition."""
        return [BoundaryKey(self.patch, self.side, c) for c in self.components(n_components)]

    def evaluate(self, coords: np.ndarray, component: int) -> np.ndarray:
        if callable(self.value):
            vals = np.asarray(self.value(coords), dtype=float)
            if vals.ndim == 2:
                vals = vals[:, component]
        elif np.ndim(self.value) == 0:
            vals = np.full(len(coords), float(self.value))
        else:
            vals = np.asarray(self.value, dtype=float)
        if vals.shape != (len(coords),):
            raise ConfigurationError(
                f"Dirichlet value on patch {self.patch} side {self.side!r} has "
                f"shape {vals.shape}, expected ({len(coords)},)."
            )
        return vals

    def __repr__(self) -> str:
        return (
            f"Dirichlet(patch={self.patch}, side={self.side!r}, "
            f"component={self.component}, value={self.value!r})"
        )


class Neumann(BoundaryCondition):
    """Surface traction (Neumann / natural) boundary condition.

    Args:
        patch: Patch index.
        side: Side name.
        traction: Traction vector ``(tx, ty)`` or callable ``f(coords)``
            returning ``(N, 2)`` nodal tractions.
    """

    def __init__(
        self,
        patch: int,
        side: str,
        traction: ArrayLike | Callable = (0.0, 0.0),
    ) -> None:
        self.patch = int(patch)
        self.side = side
        self.traction = traction

    def evaluate(self, coords: np.ndarray, component: int) -> np.ndarray:
        if callable(self.traction):
            vals = np.asarray(self.traction(coords), dtype=float)
            return vals[:, component]
        return np.full(len(coords), float(np.asarray(self.traction)[component]))

    def __repr__(self) -> str:
        return f"Neumann(patch={self.patch}, side={self.side!r}, traction={self.traction!r})"


# ======================================================================
# Prescribed values
# ======================================================================


class FixedDofs(MutableMapping):
    """Prescribed values per :class:`BoundaryKey`.

    Entries are stored as read-only copies, so an entry can only change
    by assigning a complete new array.

    Example::

        fixed = assembler.fixed_dofs()
        fixed[BoundaryKey(0, "west", 0)] = np.zeros(n_side)
    """

    def __init__(self, entries: dict[BoundaryKey, ArrayLike] | None = None) -> None:
        self._entries: dict[BoundaryKey, np.ndarray] = {}
        for key, values in (entries or {}).items():
            self[key] = values

    def __getitem__(self, key: BoundaryKey) -> np.ndarray:
        return self._entries[key]

    def __setitem__(self, key: BoundaryKey, values: ArrayLike) -> None:
        if not isinstance(key, BoundaryKey):
            raise TypeError(f"Expected a BoundaryKey, got {type(key).__name__}.")
        arr = np.array(values, dtype=float, copy=True)
        if arr.ndim != 1:
            raise ConfigurationError(
                f"Fixed values for {key} must be one-dimensional, got shape {arr.shape}."
            )
        arr.setflags(write=False)
        self._entries[key] = arr

    def __delitem__(self, key: BoundaryKey) -> None:
        del self._entries[key]

    def __iter__(self) -> Iterator[BoundaryKey]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def copy(self) -> "FixedDofs":
        """Shallow copy; the read-only arrays are shared safely."""
        out = FixedDofs()
        out._entries = dict(self._entries)
        return out

    def scaled(self, factor: float, keys: Any = None) -> "FixedDofs":
        """Copy with the selected entries (default: all) multiplied by *factor*."""
        out = self.copy()
        for key in (self._entries if keys is None else keys):
            out[key] = factor * self._entries[key]
        return out

    def __repr__(self) -> str:
        return f"FixedDofs({sorted(self._entries)})"
