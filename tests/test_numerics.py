"""Tests for the numerical building blocks."""

import numpy as np
import pytest

from convfield import (
    ConvergenceError,
    ShapeError,
    make_derivatives,
    newton_raphson,
    xvals_to_voxels,
    local_maxima_indices,
    triangulate,
    integrate_over_triangulation,
)


class TestMakeDerivatives:
    """Tests for forward-difference derivatives."""

    @pytest.mark.parametrize("x", [1.0, 5.0, 10.0])
    def test_square_1d(self, x):
        """Test derivatives of x^2 in 1D."""
        fprime, fprime2 = make_derivatives(lambda t: t**2, dim=1)
        np.testing.assert_allclose(fprime(x), 2 * x, atol=1e-3)
        np.testing.assert_allclose(fprime2(x), 2.0, atol=1e-2)

    def test_quadratic_2d(self):
        """Test gradient and Hessian of a 2D quadratic."""

        def f(x):
            return x[0] ** 2 + 3 * x[0] * x[1]

        fprime, fprime2 = make_derivatives(f, dim=2)
        x = np.array([1.0, 2.0])
        np.testing.assert_allclose(fprime(x), [8.0, 3.0], atol=1e-3)
        H = fprime2(x)
        assert H.shape == (2, 2)
        np.testing.assert_allclose(H, [[2.0, 3.0], [3.0, 0.0]], atol=1e-2)

    def test_3d_gradient_shape(self):
        """Test that a 3D scalar function gives a length-3 gradient."""
        fprime, fprime2 = make_derivatives(lambda x: np.sum(x**2), dim=3)
        x = np.array([1.0, -1.0, 0.5])
        np.testing.assert_allclose(fprime(x), 2 * x, atol=1e-3)
        assert fprime2(x).shape == (3, 3)

    def test_dim_from_attribute(self):
        """Test that the dimension is read from a 'dim' attribute."""

        class Field:
            dim = 2

            def __call__(self, x):
                return x[0] * x[1]

        fprime, _ = make_derivatives(Field())
        np.testing.assert_allclose(fprime(np.array([2.0, 3.0])), [3.0, 2.0], atol=1e-3)

    def test_missing_dim(self):
        """Test that a plain function without dim is rejected."""
        with pytest.raises(ShapeError):
            make_derivatives(lambda x: x)

    def test_invalid_dim(self):
        """Test that dimensions other than 1, 2, 3 are rejected."""
        with pytest.raises(ShapeError):
            make_derivatives(lambda x: x, dim=4)

    def test_invalid_step(self):
        """Test that a non-positive step is rejected."""
        with pytest.raises(ValueError):
            make_derivatives(lambda x: x, dim=1, h=0)


class TestNewtonRaphson:
    """Tests for the Newton-Raphson root finder."""

    def test_quadratic_converges(self):
        """Test convergence to the maximum of a concave quadratic."""
        c = np.array([1.5, -0.5])

        def fprime(x):
            return -2 * (x - c)

        def fprime2(x):
            return -2 * np.eye(2)

        x = newton_raphson(fprime, np.zeros(2), fprime2)
        np.testing.assert_allclose(x, c, atol=1e-10)

    def test_scalar_start(self):
        """Test a 1D problem started from a float."""
        x = newton_raphson(lambda t: np.cos(t), 1.0, lambda t: -np.sin(t), tol=1e-10)
        assert x.shape == (1,)
        np.testing.assert_allclose(x[0], np.pi / 2, atol=1e-8)

    def test_singular_hessian(self):
        """Test that a singular Hessian raises ConvergenceError."""
        with pytest.raises(ConvergenceError) as excinfo:
            newton_raphson(lambda x: np.ones(2), np.zeros(2), lambda x: np.zeros((2, 2)))
        assert not excinfo.value.diverged

    def test_non_finite_gradient(self):
        """Test that a NaN gradient is reported as divergence."""
        with pytest.raises(ConvergenceError) as excinfo:
            newton_raphson(lambda x: np.full(1, np.nan), 0.0, lambda x: np.ones((1, 1)))
        assert excinfo.value.diverged
        assert excinfo.value.point is not None

    def test_max_iter(self):
        """Test that running out of iterations raises."""
        # x^(1/3)-like root: Newton overshoots and oscillates
        with pytest.raises(ConvergenceError):
            newton_raphson(
                lambda x: np.cbrt(x),
                1.0,
                lambda x: 1.0 / (3.0 * np.cbrt(x) ** 2),
                tol=1e-12,
                max_iter=20,
            )


class TestLattice:
    """Tests for lattice coordinates and local maxima."""

    def test_voxel_order(self):
        """Test that voxel coordinates follow C order."""
        coords = xvals_to_voxels([np.array([1.0, 2.0]), np.array([10.0, 20.0, 30.0])])
        assert coords.shape == (2, 6)
        np.testing.assert_array_equal(coords[0], [1, 1, 1, 2, 2, 2])
        np.testing.assert_array_equal(coords[1], [10, 20, 30, 10, 20, 30])

    def test_maxima_sorted(self):
        """Test that maxima are sorted by decreasing value."""
        field = np.zeros(20)
        field[3] = 1.0
        field[10] = 3.0
        field[16] = 2.0
        idx = local_maxima_indices(field, top=3)
        np.testing.assert_array_equal(idx, [[10, 16, 3]])

    def test_top_limits_count(self):
        """Test that at most 'top' maxima are returned."""
        field = np.zeros((10, 10))
        field[2, 2] = 1.0
        field[7, 7] = 2.0
        idx = local_maxima_indices(field, top=1)
        assert idx.shape == (2, 1)
        np.testing.assert_array_equal(idx[:, 0], [7, 7])

    def test_ties_by_index(self):
        """Test that equal maxima come out in C-order."""
        field = np.zeros((6, 6))
        field[4, 1] = 1.0
        field[1, 4] = 1.0
        idx = local_maxima_indices(field, top=2)
        np.testing.assert_array_equal(idx, [[1, 4], [4, 1]])

    def test_plateau_reported_once(self):
        """Test that equal adjacent maxima count as a single maximum."""
        field = np.zeros(20)
        field[4:6] = 1.0
        field[12] = 0.5
        idx = local_maxima_indices(field, top=2)
        np.testing.assert_array_equal(idx, [[4, 12]])

    def test_plateau_2d(self):
        """Test a 2x2 plateau in 2D."""
        field = np.zeros((8, 8))
        field[2:4, 5:7] = 2.0
        idx = local_maxima_indices(field, top=3)
        np.testing.assert_array_equal(idx, [[2], [5]])

    def test_flat_background_not_maximum(self):
        """Test that a constant background yields no maxima."""
        field = np.zeros(30)
        field[10] = 1.0
        idx = local_maxima_indices(field, top=3)
        np.testing.assert_array_equal(idx, [[10]])
        assert local_maxima_indices(np.ones((5, 5)), top=2).shape == (2, 0)

    def test_mask_excludes(self):
        """Test that masked voxels are never maxima."""
        field = np.zeros(20)
        field[5] = 5.0
        field[15] = 1.0
        mask = np.ones(20, dtype=bool)
        mask[5] = False
        idx = local_maxima_indices(field, top=1, mask=mask)
        np.testing.assert_array_equal(idx, [[15]])


class TestTriangulation:
    """Tests for integration over a Delaunay triangulation."""

    def _grid(self, n):
        x = np.linspace(0.0, 1.0, n)
        return xvals_to_voxels([x, x]).T

    def test_constant_gives_area(self):
        """Test that integrating 1 gives the area of the hull."""
        points = self._grid(5) * 2.0
        tri = triangulate(points)
        np.testing.assert_allclose(integrate_over_triangulation(tri, np.ones(25)), 4.0)

    def test_linear_exact(self):
        """Test that a linear function is integrated exactly."""
        points = self._grid(7)
        tri = triangulate(points)
        values = points[:, 0] + points[:, 1]
        np.testing.assert_allclose(integrate_over_triangulation(tri, values), 1.0)

    def test_bad_points(self):
        """Test that non-2D point sets are rejected."""
        with pytest.raises(ValueError):
            triangulate(np.zeros((5, 3)))

    def test_value_count_mismatch(self):
        """Test that the number of values must match the points."""
        tri = triangulate(self._grid(3))
        with pytest.raises(ValueError):
            integrate_over_triangulation(tri, np.ones(4))
