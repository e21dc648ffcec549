"""Tests for boundary data and ramps."""

import numpy as np
import pytest

from pyfsi.boundaries import (
    BoundaryKey,
    CosineRamp,
    Dirichlet,
    FixedDofs,
    Hydrograph,
    Neumann,
    cosine_ramp,
)
from pyfsi.errors import ConfigurationError


class TestDirichlet:
    def test_all_components(self):
        bc = Dirichlet(0, "west")
        assert bc.keys(2) == [BoundaryKey(0, "west", 0), BoundaryKey(0, "west", 1)]

    def test_component_out_of_range(self):
        with pytest.raises(ConfigurationError):
            Dirichlet(0, "west", component=2).components(2)

    def test_scalar_value(self):
        coords = np.zeros((4, 2))
        np.testing.assert_allclose(Dirichlet(0, "west", 0, 1.5).evaluate(coords, 0), 1.5)

    def test_callable_scalar_profile(self):
        coords = np.column_stack([np.zeros(3), [0.0, 0.5, 1.0]])
        bc = Dirichlet(0, "west", 0, lambda x: x[:, 1] * (1 - x[:, 1]))
        np.testing.assert_allclose(bc.evaluate(coords, 0), [0.0, 0.25, 0.0])

    def test_callable_vector_value(self):
        coords = np.ones((2, 2))
        bc = Dirichlet(0, "north", None, lambda x: np.column_stack([x[:, 0], -x[:, 1]]))
        np.testing.assert_allclose(bc.evaluate(coords, 1), [-1.0, -1.0])

    def test_wrong_length_array(self):
        with pytest.raises(ConfigurationError):
            Dirichlet(0, "west", 0, [1.0, 2.0]).evaluate(np.zeros((3, 2)), 0)


class TestNeumann:
    def test_constant_traction(self):
        t = Neumann(0, "east", (0.0, 5.0))
        np.testing.assert_allclose(t.evaluate(np.zeros((3, 2)), 1), 5.0)
        np.testing.assert_allclose(t.evaluate(np.zeros((3, 2)), 0), 0.0)


class TestFixedDofs:
    def test_values_are_copied_and_read_only(self):
        src = np.array([1.0, 2.0])
        fixed = FixedDofs({BoundaryKey(0, "west", 0): src})
        src[0] = 10.0
        assert fixed[BoundaryKey(0, "west", 0)][0] == 1.0
        with pytest.raises(ValueError):
            fixed[BoundaryKey(0, "west", 0)][0] = 5.0

    def test_copy_is_independent(self):
        key = BoundaryKey(0, "west", 0)
        fixed = FixedDofs({key: [1.0, 2.0]})
        other = fixed.copy()
        other[key] = [3.0, 4.0]
        np.testing.assert_allclose(fixed[key], [1.0, 2.0])

    def test_rejects_bad_key_and_shape(self):
        fixed = FixedDofs()
        with pytest.raises(TypeError):
            fixed[(0, "west", 0)] = [1.0]
        with pytest.raises(ConfigurationError):
            fixed[BoundaryKey(0, "west", 0)] = np.zeros((2, 2))

    def test_scaled_selected_keys(self):
        a, b = BoundaryKey(0, "west", 0), BoundaryKey(0, "west", 1)
        fixed = FixedDofs({a: [2.0, 4.0], b: [1.0, 1.0]})
        half = fixed.scaled(0.5, keys=[a])
        np.testing.assert_allclose(half[a], [1.0, 2.0])
        np.testing.assert_allclose(half[b], [1.0, 1.0])


class TestRamps:
    def test_cosine_ramp_endpoints(self):
        assert cosine_ramp(0.0) == 0.0
        assert cosine_ramp(1.0) == pytest.approx(0.5)
        assert cosine_ramp(2.0) == 1.0
        assert cosine_ramp(5.0) == 1.0

    def test_cosine_ramp_monotone(self):
        ramp = CosineRamp(period=2.0)
        values = [ramp(t) for t in np.linspace(0, 2, 21)]
        assert np.all(np.diff(values) >= 0)

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            CosineRamp(period=0.0)

    def test_hydrograph_interpolation(self):
        h = Hydrograph(times=[0, 1, 2], values=[0.0, 1.0, 1.0])
        assert h(0.5) == pytest.approx(0.5)
        assert h(3.0) == pytest.approx(1.0)
