"""Tests for the postprocess and visualization modules."""

import numpy as np
import pytest

from pyfsi.geometry import Mesh, Rectangle
from pyfsi.postprocess import (
    DiagnosticsLog,
    LineProbe,
    PhysicalField,
    PointProbe,
    PressureDifference,
    StepRecord,
    TimeCollection,
    compute_gradient,
    compute_vorticity,
    export_vtk,
    read_log,
    write_deformation,
    write_time_step,
)


def _mesh():
    return Mesh.from_patches([Rectangle(Lx=10, Ly=5)], divisions=[(10, 5)])


def _record(t, drag=1.0):
    return StepRecord(
        sim_time=t, drag=drag, lift=-0.5, pressure_diff=0.1, disp_x=0.01, disp_y=0.0,
        ale_norm=0.2, ale_time=0.3, flow_time=0.4, beam_time=0.5, flow_iter=3, beam_iter=1,
    )


class TestComputeGradient:
    def test_linear_field(self):
        """Gradient of a linear field should be constant."""
        mesh = _mesh()
        field = 2.0 * mesh.nodes[:, 0] + 3.0 * mesh.nodes[:, 1]
        grad = compute_gradient(mesh, field)
        np.testing.assert_allclose(grad[:, 0], 2.0, atol=1e-10)
        np.testing.assert_allclose(grad[:, 1], 3.0, atol=1e-10)

    def test_vector_field(self):
        mesh = _mesh()
        x, y = mesh.nodes[:, 0], mesh.nodes[:, 1]
        grad = compute_gradient(mesh, np.column_stack([y, 2.0 * x]))
        assert grad.shape == (mesh.n_cells, 2, 2)
        np.testing.assert_allclose(grad[:, 0, 1], 1.0, atol=1e-10)
        np.testing.assert_allclose(grad[:, 1, 0], 2.0, atol=1e-10)

    def test_vorticity_of_rotation(self):
        mesh = _mesh()
        x, y = mesh.nodes[:, 0], mesh.nodes[:, 1]
        omega = compute_vorticity(mesh, np.column_stack([-y, x]))
        np.testing.assert_allclose(omega, 2.0, atol=1e-10)


class TestPhysicalField:
    def test_size_checked(self):
        with pytest.raises(ValueError):
            PhysicalField(_mesh(), np.zeros(3), "p")

    def test_components_and_magnitude(self):
        mesh = _mesh()
        field = PhysicalField(mesh, np.tile([3.0, 4.0], (mesh.n_nodes, 1)), "u")
        assert field.n_components == 2
        np.testing.assert_allclose(field.magnitude(), 5.0)

    def test_value_at(self):
        mesh = _mesh()
        field = PhysicalField(mesh, mesh.nodes[:, 0], "x")
        assert field.value_at((2.5, 1.5)) == pytest.approx(2.5)

    def test_l2_norm_of_constant(self):
        mesh = _mesh()
        field = PhysicalField(mesh, np.ones(mesh.n_nodes))
        assert field.l2_norm() == pytest.approx(np.sqrt(50.0))


class TestProbes:
    def test_point_probe(self):
        mesh = _mesh()
        val = PointProbe(location=(5, 2.5)).sample(mesh, mesh.nodes[:, 0])
        assert val == pytest.approx(5.0)

    def test_point_probe_vector(self):
        mesh = _mesh()
        val = PointProbe(location=(4.2, 1.3)).sample(mesh, mesh.nodes)
        np.testing.assert_allclose(val, [4.2, 1.3])

    def test_line_probe(self):
        mesh = _mesh()
        dist, vals = LineProbe(start=(0, 2.5), end=(10, 2.5), n_points=20).sample(
            mesh, mesh.nodes[:, 0]
        )
        assert len(dist) == 20
        assert dist[-1] == pytest.approx(10.0)
        np.testing.assert_allclose(vals, dist, atol=1e-10)

    def test_pressure_difference(self):
        mesh = _mesh()
        probe = PressureDifference(front=(2.0, 1.0), back=(8.0, 1.0))
        assert probe.sample(mesh, mesh.nodes[:, 0]) == pytest.approx(-6.0)


# ----------------------------------------------------------------------
# Diagnostics log
# ----------------------------------------------------------------------

class TestDiagnosticsLog:
    def test_header_and_lines(self, tmp_path):
        path = tmp_path / "log.txt"
        with DiagnosticsLog(path) as log:
            log.write(_record(0.1))
            log.write(_record(0.2))
            assert log.n_records == 2
        lines = path.read_text().splitlines()
        assert lines[0] == "# " + " ".join(StepRecord.columns())
        assert len(lines) == 3
        assert lines[1].split()[-2:] == ["3", "1"]

    def test_lines_flushed_before_close(self, tmp_path):
        path = tmp_path / "log.txt"
        log = DiagnosticsLog(path)
        log.write(_record(0.1))
        assert len(path.read_text().splitlines()) == 2
        log.close()
        with pytest.raises(ValueError):
            log.write(_record(0.2))

    def test_read_back(self, tmp_path):
        path = tmp_path / "log.txt"
        with DiagnosticsLog(path) as log:
            for i in range(3):
                log.write(_record(0.1 * (i + 1), drag=float(i)))
        data = read_log(path)
        np.testing.assert_allclose(data["sim_time"], [0.1, 0.2, 0.3])
        np.testing.assert_allclose(data["drag"], [0.0, 1.0, 2.0])
        np.testing.assert_allclose(data["flow_iter"], 3)

    @pytest.mark.filterwarnings("ignore::UserWarning")
    def test_header_only(self, tmp_path):
        path = tmp_path / "log.txt"
        DiagnosticsLog(path).close()
        data = read_log(path)
        assert set(data) == set(StepRecord.columns())
        assert data["sim_time"].size == 0

    def test_append_keeps_single_header(self, tmp_path):
        path = tmp_path / "log.txt"
        with DiagnosticsLog(path) as log:
            log.write(_record(0.1))
        with DiagnosticsLog(path, append=True) as log:
            log.write(_record(0.2))
        lines = path.read_text().splitlines()
        assert sum(line.startswith("#") for line in lines) == 1
        assert len(lines) == 3


# ----------------------------------------------------------------------
# Export
# ----------------------------------------------------------------------

class TestExport:
    def test_export_vtk(self, tmp_path):
        meshio = pytest.importorskip("meshio")
        mesh = _mesh()
        out = tmp_path / "fields.vtu"
        export_vtk(mesh, {"p": mesh.nodes[:, 0], "u": mesh.nodes.copy()}, out)
        back = meshio.read(out)
        assert back.points.shape == (mesh.n_nodes, 3)
        assert back.point_data["u"].shape == (mesh.n_nodes, 3)
        np.testing.assert_allclose(back.point_data["p"], mesh.nodes[:, 0])

    def test_time_series(self, tmp_path):
        pytest.importorskip("meshio")
        mesh = _mesh()
        collection = TimeCollection(tmp_path / "flow")
        for step in range(1, 3):
            fields = {"pressure": PhysicalField(mesh, step * np.ones(mesh.n_nodes), "pressure")}
            written = write_time_step(fields, tmp_path / "flow", collection, step, time=0.1 * step)
            assert written.exists()
        assert len(collection) == 2
        pvd = collection.save().read_text()
        assert 'file="flow_1.vtu"' in pvd
        assert 'timestep="0.2"' in pvd

    def test_export_disabled(self, tmp_path):
        mesh = _mesh()
        collection = TimeCollection(tmp_path / "flow")
        fields = {"p": PhysicalField(mesh, np.zeros(mesh.n_nodes))}
        assert write_time_step(fields, tmp_path / "flow", collection, 1, num_points=0) is None
        assert len(collection) == 0
        assert not list(tmp_path.iterdir())

    def test_deformation(self, tmp_path):
        meshio = pytest.importorskip("meshio")
        mesh = _mesh()
        collection = TimeCollection(tmp_path / "ale")
        disp = np.tile([0.5, 0.0], (mesh.n_nodes, 1))
        path = write_deformation(mesh, disp, tmp_path / "ale", collection, 1)
        back = meshio.read(path)
        np.testing.assert_allclose(back.points[:, 0], mesh.nodes[:, 0] + 0.5)
        # the input mesh is left untouched
        assert mesh.nodes[:, 0].min() == pytest.approx(0.0)


# ----------------------------------------------------------------------
# Plots
# ----------------------------------------------------------------------

class TestPlots:
    @pytest.fixture(autouse=True)
    def _agg(self):
        matplotlib = pytest.importorskip("matplotlib")
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        yield
        plt.close("all")

    def test_plot_field_with_streamlines(self):
        from pyfsi.visualization import plot_field

        mesh = _mesh()
        velocity = np.column_stack([np.ones(mesh.n_nodes), 0.1 * mesh.nodes[:, 0]])
        ax = plot_field(mesh, velocity, streamlines=True, title="|u|")
        assert ax.get_title() == "|u|"

    def test_streamlines_need_vectors(self):
        from pyfsi.visualization import plot_field

        mesh = _mesh()
        with pytest.raises(ValueError):
            plot_field(mesh, mesh.nodes[:, 0], streamlines=True)

    def test_plot_deformation(self):
        from pyfsi.visualization import plot_deformation

        mesh = _mesh()
        ax = plot_deformation(mesh, np.zeros((mesh.n_nodes, 2)), scale=10.0)
        assert "x10" in ax.get_title()

    def test_plot_log(self, tmp_path):
        from pyfsi.visualization import plot_log

        path = tmp_path / "log.txt"
        with DiagnosticsLog(path) as log:
            log.write(_record(0.1))
            log.write(_record(0.2))
        axes = plot_log(read_log(path), columns=("drag", "lift"))
        assert len(axes) == 2
        assert axes[0].get_ylabel() == "drag"
