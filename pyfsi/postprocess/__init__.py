"""Post-processing: derived fields, probes, diagnostics log, export."""

from pyfsi.postprocess.fields import PhysicalField, compute_gradient, compute_vorticity
from pyfsi.postprocess.probes import PointProbe, LineProbe, PressureDifference
from pyfsi.postprocess.log import StepRecord, DiagnosticsLog, read_log
from pyfsi.postprocess.export import (
    TimeCollection,
    export_vtk,
    write_deformation,
    write_time_step,
)

__all__ = [
    "PhysicalField",
    "compute_gradient",
    "compute_vorticity",
    "PointProbe",
    "LineProbe",
    "PressureDifference",
    "StepRecord",
    "DiagnosticsLog",
    "read_log",
    "TimeCollection",
    "export_vtk",
    "write_deformation",
    "write_time_step",
]
