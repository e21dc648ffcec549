"""Visualization: 2-D plotting utilities."""

from pyfsi.visualization.plot2d import (
    plot_field,
    plot_streamlines,
    plot_deformation,
    plot_log,
)

__all__ = [
    "plot_field",
    "plot_streamlines",
    "plot_deformation",
    "plot_log",
]
