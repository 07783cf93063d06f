"""Test cases for the field-coupling terms of the linearized BTE."""

import numpy as np
import pytest
from dragBTE.base import Electron
from dragBTE.fields import _field_term, field_coefficients, field_term
from dragBTE.rates import aggregate_rates
from scipy.constants import elementary_charge

from . import FakeCommunicator, along_x, make_electron, make_phonon
from .defaults import DEFAULT_TEMPERATURE, EL_CHANNEL_RATES, EL_ENERGIES, EL_VELOCITY, PH_CHANNEL_RATES

PH_RATES = aggregate_rates(list(PH_CHANNEL_RATES.values()))
EL_RATES = np.asarray(EL_CHANNEL_RATES["eph"])


def test_field_coefficients():
    """Test the prefactor and energy power of every species and field."""
    assert field_coefficients("ph", "T", 4.0) == (0.25, 1)
    assert field_coefficients("ph", "E", 4.0) == (0.0, 0)
    assert field_coefficients("el", "T", 4.0) == (0.25, 1)
    assert field_coefficients("el", "E", 4.0) == (elementary_charge, 0)
    with pytest.raises(ValueError, match="Unknown particle species: xx"):
        field_coefficients("xx", "T", 4.0)
    with pytest.raises(ValueError, match="Unknown field type: B"):
        field_coefficients("ph", "B", 4.0)


def test_phonon_field_terms():
    """Test the phonon field terms of the toy system."""
    ph = make_phonon()
    term_T = field_term(ph, "T", PH_RATES, DEFAULT_TEMPERATURE)
    # v e / (T rate) = 0.1 for every state of the toy system
    np.testing.assert_allclose(term_T[..., 0], 0.1)
    np.testing.assert_allclose(term_T[..., 1:], 0.0)

    term_E = field_term(ph, "E", PH_RATES, DEFAULT_TEMPERATURE)
    assert term_E.shape == (2, 2, 3)
    np.testing.assert_array_equal(term_E, 0.0)


def test_electron_field_terms():
    """Test the electron field terms of the toy system."""
    el = make_electron()
    term_E = field_term(el, "E", EL_RATES, DEFAULT_TEMPERATURE)
    np.testing.assert_allclose(term_E[..., 0], elementary_charge * EL_VELOCITY / EL_RATES)

    term_T = field_term(el, "T", EL_RATES, DEFAULT_TEMPERATURE)
    expected = EL_VELOCITY * np.asarray(EL_ENERGIES) / DEFAULT_TEMPERATURE / EL_RATES
    np.testing.assert_allclose(term_T[..., 0], expected)


def test_zero_rate_gives_zero_term():
    """Test that states with a vanishing rate keep a zero field term."""
    rates = np.array(PH_RATES)
    rates[1, 0] = 0.0
    term = field_term(make_phonon(), "T", rates, DEFAULT_TEMPERATURE)
    np.testing.assert_array_equal(term[1, 0], 0.0)
    assert np.all(np.isfinite(term))


def test_phonon_chemical_potential():
    """Test that a nonzero phonon chemical potential is rejected."""
    ph = make_phonon()
    with pytest.raises(ValueError, match="Phonon chemical potential must be zero"):
        _field_term("ph", "T", ph.nequiv, ph.ibz2fbz_map, 10.0, 0.1, ph.ens, ph.vels, PH_RATES)


def test_rate_shape_mismatch():
    """Test that rate tables with the wrong number of bands are rejected."""
    with pytest.raises(ValueError, match="Shape mismatch"):
        field_term(make_phonon(), "T", np.ones((2, 3)), DEFAULT_TEMPERATURE)


def test_images_outside_window_are_skipped():
    """Test that images of IBZ points missing from the active list are skipped."""
    ens_irred = np.array([[0.01], [0.02], [0.03]])
    vels_irred = along_x(1.0, (3, 1))
    ibz2fbz_map = np.zeros((3, 1, 2), dtype=np.int64)
    ibz2fbz_map[:, 0, 1] = [0, 1, 2]
    el = Electron(
        (3, 1, 1),
        ens_irred[[0, 2]],
        vels_irred[[0, 2]],
        ens_irred,
        vels_irred,
        np.ones(3, dtype=np.int64),
        ibz2fbz_map,
        np.arange(3)[None],
        np.tile(np.eye(3), (2, 1, 1)),
        indexlist=[0, 2],
    )
    rates = np.array([[1.0], [2.0], [4.0]])
    term = field_term(el, "E", rates, DEFAULT_TEMPERATURE)
    assert term.shape == (2, 1, 3)
    np.testing.assert_allclose(term[:, 0, 0], elementary_charge * np.array([1.0, 0.25]))


def test_partitioned_terms_add_up():
    """Test that the partial terms of all workers sum to the serial term."""
    ph = make_phonon()
    serial = field_term(ph, "T", PH_RATES, DEFAULT_TEMPERATURE)
    parts = [field_term(ph, "T", PH_RATES, DEFAULT_TEMPERATURE, comm=FakeCommunicator(r, 3)) for r in range(3)]
    np.testing.assert_allclose(sum(parts), serial)
    assert np.count_nonzero(parts[2]) == 0
