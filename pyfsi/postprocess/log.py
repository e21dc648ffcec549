"""Per-step diagnostics of a coupled run.

Classes
-------
StepRecord
    Quantities recorded after one macro step.
DiagnosticsLog
    Append-only whitespace-delimited text log, flushed line by line.

Functions
---------
read_log
    Load a diagnostics log back into column arrays.
"""

from __future__ import annotations

import logging
from dataclasses import astuple, dataclass, fields
from pathlib import Path
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepRecord:
    """One line of the diagnostics log.

    Times are cumulative wall-clock seconds per stage; iteration counts
    refer to the last step only.
    """

    sim_time: float
    drag: float
    lift: float
    pressure_diff: float
    disp_x: float
    disp_y: float
    ale_norm: float
    ale_time: float
    flow_time: float
    beam_time: float
    flow_iter: int
    beam_iter: int

    @classmethod
    def columns(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def format(self) -> str:
        parts = [f"{v:d}" if isinstance(v, int) else f"{v:.10e}" for v in astuple(self)]
        return " ".join(parts)


class DiagnosticsLog:
    """Text sink receiving one :class:`StepRecord` per line.

    The file starts with a ``#`` header naming the columns.  Every line is
    flushed immediately so the log survives an aborted run.

    Args:
        path: Output file.
        append: Keep existing content (the header is written only to an
            empty file).

    Example::

        with DiagnosticsLog("fsi_log.txt") as log:
            fsi.run(10.0, log=log)
    """

    def __init__(self, path: str | Path, append: bool = False) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fresh = not append or not self.path.exists() or self.path.stat().st_size == 0
        self._fh = open(self.path, "a" if append else "w", encoding="utf-8")
        self.n_records = 0
        if fresh:
            self._fh.write("# " + " ".join(StepRecord.columns()) + "\n")
            self._fh.flush()

    def write(self, record: StepRecord) -> None:
        if self._fh.closed:
            raise ValueError(f"Log {self.path} is closed.")
        self._fh.write(record.format() + "\n")
        self._fh.flush()
        self.n_records += 1

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()
            logger.debug("Closed %s after %d record(s)", self.path, self.n_records)

    def __enter__(self) -> "DiagnosticsLog":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DiagnosticsLog(path={str(self.path)!r}, n_records={self.n_records})"


def read_log(path: str | Path) -> dict[str, np.ndarray]:
    """Read a diagnostics log written by :class:`DiagnosticsLog`.

    Returns:
        Column name to 1-D array (empty arrays for a header-only log).
    """
    names = StepRecord.columns()
    data = np.loadtxt(path, comments="#", ndmin=2)
    if data.size == 0:
        return {name: np.empty(0) for name in names}
    if data.shape[1] != len(names):
        raise ValueError(f"{path}: expected {len(names)} columns, found {data.shape[1]}.")
    return {name: data[:, i] for i, name in enumerate(names)}
