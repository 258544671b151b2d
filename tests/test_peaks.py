"""Tests for sub-voxel peak localization."""

import numpy as np
import pytest

from convfield import (
    ConvField,
    ConvergenceError,
    NonFiniteDataError,
    PeakConfig,
    ShapeError,
    TField,
    find_peaks,
)
from convfield.peaks import grid_search_seed, initial_estimates, is_local_maximum, refine_newton


def two_spikes(n=100, i=49):
    """Lattice field with equal spikes at indices i and i + 1."""
    Y = np.zeros(n)
    Y[i] = 1.0
    Y[i + 1] = 1.0
    return Y


class TestPeakConfig:
    """Tests for peak finding settings."""

    def test_defaults(self):
        """Test the default refinement settings."""
        config = PeakConfig()
        assert config.method == "newton"
        assert config.max_attempts == 10
        assert config.max_distance == 3.0

    @pytest.mark.parametrize(
        "kwargs",
        [{"method": "brent"}, {"field": "z"}, {"h": 0.0}, {"max_attempts": 0}],
    )
    def test_invalid(self, kwargs):
        """Test that invalid settings are rejected."""
        with pytest.raises(ValueError):
            PeakConfig(**kwargs)


class TestConvFieldPeaks:
    """Peak finding on deterministic convolution fields."""

    def test_midpoint_1d(self):
        """Test that two equal spikes give a peak halfway between them."""
        result = find_peaks(two_spikes(), 3.0, config=PeakConfig(field="smooth"))
        assert result.locations.shape == (1, 1)
        np.testing.assert_allclose(result.locations[0, 0], 50.5, atol=1e-4)
        field = ConvField(two_spikes(), 3.0)
        np.testing.assert_allclose(result.values[0], field.at(50.5), rtol=1e-8)

    def test_midpoint_2d(self):
        """Test a 2x2 block of spikes in 2D."""
        Y = np.zeros((20, 20))
        Y[9:11, 10:12] = 1.0
        result = find_peaks(Y, 3.0, config=PeakConfig(field="smooth"))
        np.testing.assert_allclose(result.locations[:, 0], [10.5, 11.5], atol=1e-4)

    def test_coordinate_vectors(self):
        """Test that peaks are reported in the given coordinates."""
        xvals = np.arange(100) * 0.5
        result = find_peaks(
            two_spikes(i=40), 3.0, xvals_vecs=[xvals], config=PeakConfig(field="smooth")
        )
        np.testing.assert_allclose(result.locations[0, 0], 20.25, atol=1e-4)

    def test_optimize(self):
        """Test constrained optimization on the same field."""
        config = PeakConfig(method="optimize", field="smooth")
        result = find_peaks(two_spikes(), 3.0, config=config)
        np.testing.assert_allclose(result.locations[0, 0], 50.5, atol=1e-2)

    def test_optimize_stays_in_bounds(self):
        """Test that optimization never leaves the coordinate box."""
        Y = np.zeros(30)
        Y[0] = 1.0
        config = PeakConfig(method="optimize", field="smooth")
        result = find_peaks(Y, 3.0, config=config)
        assert 1.0 <= result.locations[0, 0] <= 30.0
        np.testing.assert_allclose(result.locations[0, 0], 1.0, atol=1e-2)

    def test_three_peaks(self):
        """Test that several peaks come out in decreasing order."""
        Y = np.zeros(100)
        Y[19], Y[49], Y[79] = 3.0, 2.0, 1.0
        result = find_peaks(Y, 3.0, 3, config=PeakConfig(field="smooth"))
        np.testing.assert_allclose(result.locations[0], [20.0, 50.0, 80.0], atol=1e-4)
        assert np.all(np.diff(result.values) < 0)
        field = ConvField(Y, 3.0)
        for x in result.locations.T:
            assert abs(field.gradient_at(x)[0]) < 1e-8

    def test_plateau_and_lower_peak(self):
        """Test that a two-voxel plateau does not hide a lower peak."""
        Y = two_spikes()
        Y[20] = 0.5
        result = find_peaks(Y, 3.0, 2, config=PeakConfig(field="smooth"))
        np.testing.assert_allclose(result.locations[0], [50.5, 21.0], atol=1e-4)

    def test_flat_background_no_extra_peaks(self):
        """Test that a single spike yields a single peak."""
        Y = np.zeros(100)
        Y[49] = 1.0
        result = find_peaks(Y, 3.0, 2, config=PeakConfig(field="smooth"))
        assert result.locations.shape == (1, 1)
        np.testing.assert_allclose(result.locations[0, 0], 50.0, atol=1e-4)

    def test_seed_at_minimum(self):
        """Test that a seed between two peaks does not return the minimum."""
        Y = np.zeros(60)
        Y[19] = 1.0
        Y[39] = 1.0
        with pytest.raises(ConvergenceError, match="Peak 1"):
            find_peaks(Y, 6.0, np.array([30.0]), config=PeakConfig(field="smooth"))

    def test_explicit_gradient(self):
        """Test refinement with a caller-supplied gradient and Hessian."""
        field = ConvField(two_spikes(), 3.0)
        config = PeakConfig(
            field="smooth", gradient=field.gradient_at, hessian=field.hessian_at
        )
        result = find_peaks(two_spikes(), 3.0, np.array([50.0]), config=config)
        np.testing.assert_allclose(result.locations[0, 0], 50.5, atol=1e-4)

    def test_mask_weighted(self):
        """Test mask-weighted optimization stays on the unmasked spike."""
        Y = two_spikes()
        mask = np.ones(100, dtype=bool)
        mask[:30] = False
        config = PeakConfig(method="optimize", field="smooth", mask_weighted=True)
        result = find_peaks(Y, 3.0, mask=mask, config=config)
        np.testing.assert_allclose(result.locations[0, 0], 50.5, atol=1e-2)


class TestTFieldPeaks:
    """Peak finding on t-fields."""

    def test_bump_1d(self):
        """Test that a strong 1D signal is located."""
        rng = np.random.default_rng(0)
        x = np.arange(1.0, 101.0)
        signal = 4.0 * np.exp(-((x - 50.0) ** 2) / (2 * 3.0**2))
        data = signal[:, None] + rng.standard_normal((100, 30))
        result = find_peaks(data, 3.0, 1)
        assert abs(result.locations[0, 0] - 50.0) < 1.5
        tf = TField(data, 3.0)
        np.testing.assert_allclose(result.values[0], tf.at(result.locations[:, 0]))

    def test_gradient_vanishes(self):
        """Test that the refined peak is a critical point."""
        rng = np.random.default_rng(1)
        xx, yy = np.meshgrid(np.arange(1.0, 21.0), np.arange(1.0, 21.0), indexing="ij")
        signal = 3.0 * np.exp(-((xx - 10.0) ** 2 + (yy - 11.0) ** 2) / (2 * 2.5**2))
        data = signal[..., None] + rng.standard_normal((20, 20, 25))
        result = find_peaks(data, 3.0, 1)
        tf = TField(data, 3.0)
        x = result.locations[:, 0]
        eps = 1e-4
        for d in range(2):
            step = np.zeros(2)
            step[d] = eps
            grad = (tf.at(x + step) - tf.at(x - step)) / (2 * eps)
            assert abs(grad) < 1e-2

    def test_missing_values(self):
        """Test that NaN data is rejected before any refinement."""
        data = np.ones((10, 5))
        data[3, 2] = np.inf
        with pytest.raises(NonFiniteDataError):
            find_peaks(data, 2.0)

    def test_smooth_seed(self):
        """Test seeding from the continuous field at the voxels."""
        rng = np.random.default_rng(2)
        x = np.arange(1.0, 61.0)
        data = (3.0 * np.exp(-((x - 30.0) ** 2) / 18.0))[:, None] + rng.standard_normal((60, 20))
        config = PeakConfig(seed_field="smooth")
        result = find_peaks(data, 3.0, 1, config=config)
        assert abs(result.locations[0, 0] - 30.0) < 2.0


class TestInitialEstimates:
    """Tests for initial peak estimates."""

    def _field(self, shape):
        return ConvField(np.zeros(shape), 2.0)

    def test_drop_missing_1d(self):
        """Test that non-finite 1D estimates are dropped."""
        est = initial_estimates(self._field(10), np.array([2.0, np.nan, 7.5]))
        np.testing.assert_allclose(est, [[2.0, 7.5]])

    def test_missing_2d(self):
        """Test that non-finite estimates in 2D are rejected."""
        with pytest.raises(NonFiniteDataError):
            initial_estimates(self._field((5, 5)), np.array([[1.0], [np.nan]]))

    def test_wrong_rows(self):
        """Test that estimates must have D rows."""
        with pytest.raises(ShapeError):
            initial_estimates(self._field((5, 5)), np.ones((3, 2)))

    def test_single_point(self):
        """Test that a single D-vector is promoted to one column."""
        est = initial_estimates(self._field((5, 5)), np.array([2.0, 3.0]))
        assert est.shape == (2, 1)

    def test_count(self):
        """Test that an integer count seeds from lattice maxima."""
        Y = np.zeros(20)
        Y[4], Y[14] = 2.0, 1.0
        est = initial_estimates(ConvField(Y, 2.0), 2)
        np.testing.assert_allclose(est, [[5.0, 15.0]])

    def test_count_invalid(self):
        """Test that a count below 1 is rejected."""
        with pytest.raises(ValueError):
            initial_estimates(self._field(10), 0)


class TestRefinement:
    """Tests for the refinement state machine."""

    def test_grid_search(self):
        """Test the grid fallback seed."""
        centre = np.array([2.0, 3.0])
        target = centre + np.array([0.5, -0.25])

        def field(points):
            return -np.sum((points - target[:, None]) ** 2, axis=0)

        seed = grid_search_seed(field, centre)
        np.testing.assert_allclose(seed, target)

    def test_far_solution_fails(self):
        """Test that a root beyond max_distance is not accepted."""
        c = 5.0

        def field(points):
            return -((points[0] - c) ** 2)

        def fprime(x):
            return -2 * (np.asarray(x) - c)

        def fprime2(x):
            return -2 * np.ones((1, 1))

        config = PeakConfig(field="smooth", tol=1e-8)
        with pytest.raises(ConvergenceError):
            refine_newton(field, np.array([0.0]), fprime, fprime2, config)

        config = PeakConfig(field="smooth", tol=1e-8, max_distance=10.0)
        location = refine_newton(field, np.array([0.0]), fprime, fprime2, config)
        np.testing.assert_allclose(location, [c])

    def test_divergence_fails(self):
        """Test that a solver that always diverges ends in ConvergenceError."""

        def field(points):
            return np.zeros(points.shape[1])

        def fprime(x):
            return np.full(1, np.nan)

        def fprime2(x):
            return np.ones((1, 1))

        config = PeakConfig(tol=1e-6)
        with pytest.raises(ConvergenceError):
            refine_newton(field, np.array([1.0]), fprime, fprime2, config)

    def test_minimum_rejected(self):
        """Test that a converged minimum is not accepted as a peak."""
        c = 0.2

        def field(points):
            return (points[0] - c) ** 2

        def fprime(x):
            return 2 * (np.asarray(x) - c)

        def fprime2(x):
            return 2 * np.ones((1, 1))

        config = PeakConfig(field="smooth", tol=1e-8)
        with pytest.raises(ConvergenceError, match="not a local maximum"):
            refine_newton(field, np.array([0.0]), fprime, fprime2, config)

    def test_minimum_escapes_to_maximum(self):
        """Test that the grid fallback moves a seed off a minimum onto a maximum."""

        def field(points):
            return np.cos(np.pi * points[0])

        def fprime(x):
            return -np.pi * np.sin(np.pi * np.asarray(x))

        def fprime2(x):
            return (-np.pi**2 * np.cos(np.pi * np.asarray(x))).reshape(1, 1)

        config = PeakConfig(field="smooth", tol=1e-10)
        location = refine_newton(field, np.array([1.0]), fprime, fprime2, config)
        np.testing.assert_allclose(abs(location[0] - 1.0), 1.0, atol=1e-8)
        assert fprime2(location)[0, 0] < 0

    def test_grid_fallback_recovers(self):
        """Test that a diverged first run is rescued by the grid fallback."""
        c = 0.3
        calls = {"n": 0}

        def field(points):
            return -((points[0] - c) ** 2)

        def fprime(x):
            calls["n"] += 1
            if calls["n"] == 1:
                return np.full(1, np.nan)
            return -2 * (np.asarray(x) - c)

        def fprime2(x):
            return -2 * np.ones((1, 1))

        config = PeakConfig(field="smooth", tol=1e-8)
        location = refine_newton(field, np.array([0.0]), fprime, fprime2, config)
        np.testing.assert_allclose(location, [c], atol=1e-8)

    def test_perturbed_retry_recovers(self):
        """Test that non-divergent failures are retried from shifted seeds."""
        c = 0.5
        calls = {"n": 0}

        def field(points):
            raise AssertionError("grid search must not run when retries succeed")

        def fprime(x):
            return -2 * (np.asarray(x) - c)

        def fprime2(x):
            calls["n"] += 1
            # singular for the first two solver runs
            if calls["n"] <= 2:
                return np.zeros((1, 1))
            return -2 * np.ones((1, 1))

        config = PeakConfig(field="smooth", tol=1e-8)
        location = refine_newton(field, np.array([0.0]), fprime, fprime2, config)
        np.testing.assert_allclose(location, [c], atol=1e-8)
        assert calls["n"] >= 3

    def test_failure_names_peak(self):
        """Test that refinement errors carry the peak number."""

        def fprime(x):
            return np.full(1, np.nan)

        config = PeakConfig(tol=1e-6)
        with pytest.raises(ConvergenceError, match="Peak 4"):
            refine_newton(
                lambda p: np.zeros(p.shape[1]),
                np.array([1.0]),
                fprime,
                lambda x: np.ones((1, 1)),
                config,
                index=4,
            )

    def test_is_local_maximum(self):
        """Test the Hessian curvature check."""
        assert is_local_maximum(np.array([[-2.0, 0.5], [0.5, -1.0]]))
        assert not is_local_maximum(np.array([[-2.0, 0.0], [0.0, 1.0]]))
        assert not is_local_maximum(np.array([[np.nan]]))
        assert is_local_maximum(np.zeros((2, 2)))
