"""Test cases for the aggregation of scattering rates."""

import numpy as np
import pytest
from dragBTE.rates import aggregate_rates, boundary_rates, thinfilm_rates

from .defaults import PH_CHANNEL_RATES


def test_matthiessen_sum():
    """Test that bulk channels are summed."""
    total = aggregate_rates(list(PH_CHANNEL_RATES.values()))
    np.testing.assert_allclose(total, [[2.0, 4.0], [5.0, 8.0]])


def test_surface_channel_sees_partial_sum():
    """Test that surface channels are evaluated on the bulk sum and added on top."""
    seen = []

    def surface(partial):
        seen.append(np.array(partial))
        return 0.5 * partial

    total = aggregate_rates(list(PH_CHANNEL_RATES.values()), [surface])
    np.testing.assert_allclose(seen[0], [[2.0, 4.0], [5.0, 8.0]])
    np.testing.assert_allclose(total, [[3.0, 6.0], [7.5, 12.0]])


def test_aggregate_errors():
    """Test that missing channels and mismatched shapes are rejected."""
    with pytest.raises(ValueError, match="At least one"):
        aggregate_rates([])
    with pytest.raises(ValueError, match="Shape mismatch"):
        aggregate_rates([np.ones((2, 2)), np.ones((2, 3))])
    with pytest.raises(ValueError, match="Shape mismatch"):
        aggregate_rates([np.ones((2, 2))], [lambda partial: np.ones(3)])


def test_boundary_rates():
    """Test the Casimir boundary rate |v|/L."""
    vels = np.zeros((1, 2, 3))
    vels[0, 0] = [3.0, 4.0, 0.0]
    np.testing.assert_allclose(boundary_rates(vels, 10.0), [[0.5, 0.0]])
    with pytest.raises(ValueError, match="Boundary length"):
        boundary_rates(vels, 0.0)


def test_thinfilm_ballistic():
    """Test the ballistic thin-film rate."""
    vels = np.zeros((1, 2, 3))
    vels[0, 0] = [1.0, 0.0, 2.0]
    vels[0, 1] = [1.0, 0.0, -4.0]
    partial = np.ones((1, 2))
    rates = thinfilm_rates(vels, partial, 8.0, [0.0, 0.0, 1.0], ballistic=True)
    np.testing.assert_allclose(rates, [[0.5, 1.0]])
    rates = thinfilm_rates(vels, partial, 8.0, [0.0, 0.0, 1.0], specularity=0.5, ballistic=True)
    np.testing.assert_allclose(rates, [[0.5 / 3, 1.0 / 3]])


def test_thinfilm_diffusive():
    """Test the Fuchs-Sondheimer thin-film rate."""
    vels = np.zeros((1, 3, 3))
    vels[0, 0] = [0.0, 0.0, 1.0]
    vels[0, 1] = [1.0, 0.0, 0.0]
    vels[0, 2] = [0.0, 0.0, 2.0]
    partial = np.array([[1.0, 1.0, 0.0]])
    height = 2.0
    rates = thinfilm_rates(vels, partial, height, [0.0, 0.0, 1.0])

    # lambda = 1, x = 2
    S = 1.0 - 0.5 * (1.0 - np.exp(-2.0))
    assert rates[0, 0] == pytest.approx((1.0 - S) / S)
    # in-plane velocity does not see the film
    assert rates[0, 1] == 0.0
    # vanishing bulk rate falls back to the ballistic limit
    assert rates[0, 2] == pytest.approx(2.0)

    specular = thinfilm_rates(vels, partial, height, [0.0, 0.0, 1.0], specularity=1.0)
    np.testing.assert_allclose(specular, 0.0)
    with pytest.raises(ValueError, match="Thin-film height"):
        thinfilm_rates(vels, partial, None, [0.0, 0.0, 1.0])


@pytest.mark.parametrize("partial", [1e-3, 1e-7])
def test_thinfilm_long_mean_free_path(partial):
    """Test that the diffusive rate approaches the ballistic limit for mean free paths much longer than the film."""
    vels = np.zeros((1, 1, 3))
    vels[0, 0] = [0.0, 0.0, 100.0]
    rates = thinfilm_rates(vels, [[partial]], 1.0, [0.0, 0.0, 1.0])
    # lambda / h >= 1e5, S = h / (2 lambda), rate = 2 |v.n| / h
    assert rates[0, 0] == pytest.approx(200.0, rel=1e-4)
