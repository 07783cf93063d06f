"""Test cases for IO functionality of the dragBTE package."""

import json
from argparse import Namespace
from os.path import exists
from os.path import join as pj

import h5py
import numpy as np
import pytest
from dragBTE.base import SelfScattering
from dragBTE.io import (
    SCHEMA,
    HDF5TransitionStore,
    MemoryTransitionStore,
    OnTheFlyTransitionStore,
    ResultContainer,
    TransitionStore,
    load_system,
    save_system,
    temperature_tag,
    write_transition_probs,
)

from . import el_response, make_crystal, make_electron, make_phonon
from .defaults import DEFAULT_TEMPERATURE, EL_CHANNEL_RATES, PH_CHANNEL_RATES


def test_temperature_tag():
    """Test the directory and group names of temperatures."""
    assert temperature_tag(300) == "T3.000e+02"
    assert temperature_tag(12.5) == "T1.250e+01"


def test_memory_store():
    """Test lookups in the in-memory transition store."""
    store = MemoryTransitionStore({("Wp", 0): ([1.0, 2.0], [[1, 2], [3, 0]])})
    assert isinstance(store, TransitionStore)
    record = store.lookup("Wp", 0)
    assert len(record) == 2
    np.testing.assert_array_equal(record.partners, [[1, 2], [3, 0]])
    assert store.channels() == ["Wp"]

    with pytest.raises(KeyError, match="No Wp record for state 1"):
        store.lookup("Wp", 1)
    with pytest.raises(KeyError, match="Unknown transition channel"):
        store.lookup("Q", 0)
    with pytest.raises(ValueError):
        store.put("Wp", 2, [1.0], [[1, 2, 3]])

    lenient = MemoryTransitionStore(strict=False)
    assert len(lenient.lookup("Wp", 1)) == 0
    assert lenient.lookup("Xee", 1).partners.shape == (0, 3)


def test_memory_store_with_empty_records():
    """Test that explicit empty records cover every state of the requested channels only."""
    store = MemoryTransitionStore.empty(["Wp", "Xee"], 3)
    assert store.channels() == ["Wp", "Xee"]
    assert len(store.lookup("Wp", 2)) == 0
    assert store.lookup("Xee", 0).partners.shape == (0, 3)
    store.put("Wp", 1, [0.5], [[0, 2]])
    np.testing.assert_array_equal(store.lookup("Wp", 1).weights, [0.5])
    with pytest.raises(KeyError, match="No Wp record for state 3"):
        store.lookup("Wp", 3)
    with pytest.raises(KeyError, match="No Wm record for state 0"):
        store.lookup("Wm", 0)


def test_on_the_fly_store():
    """Test that the on-the-fly store calls its generator and optionally caches."""
    calls = []

    def generator(channel, istate):
        calls.append((channel, istate))
        return [float(istate)], [[istate]]

    store = OnTheFlyTransitionStore(generator)
    store.lookup("Xchimp", 3)
    store.lookup("Xchimp", 3)
    assert len(calls) == 2

    cached = OnTheFlyTransitionStore(generator, cache=True)
    first = cached.lookup("Xchimp", 4)
    assert cached.lookup("Xchimp", 4) is first
    assert len(calls) == 3
    np.testing.assert_array_equal(first.weights, [4.0])
    with pytest.raises(KeyError):
        cached.lookup("Q", 4)


@pytest.mark.parametrize("temperature", [None, DEFAULT_TEMPERATURE])
def test_hdf5_store_round_trip(tmp_path, temperature):
    """Test that records written in CSR layout are read back per state."""
    path = str(tmp_path / "transitions.hdf5")
    records = {0: ([1.0, 2.0], [[1, 2], [3, 0]]), 2: ([0.5], [[1, 1]])}
    write_transition_probs(path, "Wp", records, nstates=4, temperature=temperature)
    write_transition_probs(path, "Y", {}, nstates=4, temperature=temperature)

    with HDF5TransitionStore(path, temperature) as store:
        assert isinstance(store, TransitionStore)
        assert store.channels() == ["Wp", "Y"]
        record = store.lookup("Wp", 0)
        np.testing.assert_array_equal(record.weights, [1.0, 2.0])
        np.testing.assert_array_equal(record.partners, [[1, 2], [3, 0]])
        assert len(store.lookup("Wp", 1)) == 0
        np.testing.assert_array_equal(store.lookup("Wp", 2).partners, [[1, 1]])
        assert len(store.lookup("Y", 3)) == 0
        with pytest.raises(KeyError, match="No Wp record"):
            store.lookup("Wp", 4)
        with pytest.raises(KeyError, match="Channel Wm not found"):
            store.lookup("Wm", 0)

    with h5py.File(path, "r") as f:
        root = f if temperature is None else f[temperature_tag(temperature)]
        np.testing.assert_array_equal(root["Wp"]["offsets"][...], [0, 2, 2, 3, 3])


def test_hdf5_store_missing_temperature(tmp_path):
    """Test that a missing temperature group is reported."""
    path = str(tmp_path / "transitions.hdf5")
    write_transition_probs(path, "Wp", {}, nstates=1, temperature=100.0)
    with pytest.raises(KeyError, match="Temperature 200.0 not found"):
        HDF5TransitionStore(path, 200.0)


def test_result_container_responses(tmp_path):
    """Test writing and reading response functions."""
    with ResultContainer(str(tmp_path), DEFAULT_TEMPERATURE, compression=None) as rc:
        rc.write_response("nodrag_I0", el_response(), bandlist=[3, 4])
        rc.write_response("nodrag_I0", 2.0 * el_response())
        rc.write_response("RTA_F0", np.ones((2, 2, 3)))
        with pytest.raises(ValueError, match="Response functions must have shape"):
            rc.write_response("bad", np.ones((2, 2)))
        path = rc.path

    assert path == pj(str(tmp_path), temperature_tag(DEFAULT_TEMPERATURE), "bte.hdf5")
    with ResultContainer(str(tmp_path), DEFAULT_TEMPERATURE, read_only=True) as rc:
        assert rc.f.attrs["schema"] == SCHEMA
        assert rc.responses() == ["RTA_F0", "nodrag_I0"]
        np.testing.assert_array_equal(rc.read_response("nodrag_I0"), 2.0 * el_response())
        with pytest.raises(KeyError, match="No response drag_J0"):
            rc.read_response("drag_J0")


def test_result_container_bitshuffle(tmp_path):
    """Test that compressed responses are read back unchanged."""
    response = np.random.default_rng(1).normal(size=(5, 3, 3))
    with ResultContainer(str(tmp_path), DEFAULT_TEMPERATURE) as rc:
        rc.write_response("drag_G0", response)
        np.testing.assert_array_equal(rc.read_response("drag_G0"), response)


def test_result_container_tensors(tmp_path):
    """Test the per-iteration transport tensor histories."""
    tensor = np.arange(18.0).reshape(2, 3, 3)
    with ResultContainer(str(tmp_path), DEFAULT_TEMPERATURE, compression=None) as rc:
        for iteration in range(3):
            rc.append_tensor("drag_el_sigma", iteration, (iteration + 1) * tensor)
        history = rc.read_tensor("drag_el_sigma")
        assert history.shape == (3, 2, 3, 3)
        np.testing.assert_array_equal(history[:, 1, 0, 1], [10.0, 20.0, 30.0])
        with pytest.raises(ValueError, match="Tensor shape"):
            rc.append_tensor("drag_el_sigma", 3, np.ones((3, 3)))
        with pytest.raises(KeyError):
            rc.read_tensor("drag_ph_kappa")

    # a new history in the same file replaces the longer old one
    with ResultContainer(str(tmp_path), DEFAULT_TEMPERATURE, compression=None) as rc:
        rc.append_tensor("drag_el_sigma", 0, -tensor)
        rc.append_tensor("drag_el_sigma", 1, tensor)
        history = rc.read_tensor("drag_el_sigma")
        assert history.shape == (2, 2, 3, 3)
        np.testing.assert_array_equal(history[:, 1, 0, 1], [-10.0, 10.0])


def test_result_container_rates_metadata_spectral(tmp_path):
    """Test rate tables, metadata and spectral coefficients."""
    with ResultContainer(str(tmp_path), DEFAULT_TEMPERATURE, compression=None) as rc:
        rc.write_rates("el", "eph", EL_CHANNEL_RATES["eph"])
        np.testing.assert_array_equal(rc.read_rates("el", "eph"), EL_CHANNEL_RATES["eph"])
        with pytest.raises(KeyError):
            rc.read_rates("ph", "3ph")

        rc.write_metadata(Namespace(max_iter=5, bfield=np.array([0.0, 0.0, 1.0])), converged={"drag_ph": True})
        assert json.loads(rc.f.attrs["command_line_args"]) == {"max_iter": 5, "bfield": [0.0, 0.0, 1.0]}
        assert json.loads(rc.f.attrs["converged"]) == {"drag_ph": True}

        grid = np.linspace(0.0, 1.0, 5)
        hc = np.ones((2, 3, 3, 5))
        rc.write_spectral("drag_I0", grid, hc, -hc)
        en, hc_read, cc_read = rc.read_spectral("drag_I0")
        np.testing.assert_array_equal(en, grid)
        np.testing.assert_array_equal(cc_read, -hc)
        with pytest.raises(KeyError):
            rc.read_spectral("drag_J0")


def test_system_round_trip(tmp_path):
    """Test that a saved system is loaded back unchanged."""
    path = str(tmp_path / "system.hdf5")
    crystal = make_crystal(bound_length=100.0, thinfilm_height=20.0)
    phonon = make_phonon(isotope=SelfScattering([[0, 3]], [2.0]))
    electron = make_electron(chempot=0.01, fsthick=0.5, bandlist=[4, 5])
    rates = {("ph", ch): np.asarray(table) for ch, table in PH_CHANNEL_RATES.items()}
    rates[("el", "eph")] = np.asarray(EL_CHANNEL_RATES["eph"])
    save_system(path, crystal, phonon, electron, rates)
    assert exists(path)

    crystal2, phonon2, electron2, rates2 = load_system(path, DEFAULT_TEMPERATURE)
    assert crystal2.temperature == DEFAULT_TEMPERATURE
    assert crystal2.bound_length == pytest.approx(100.0)
    assert crystal2.thinfilm_height == pytest.approx(20.0)
    np.testing.assert_array_equal(crystal2.crotations, crystal.crotations)
    np.testing.assert_array_equal(phonon2.ens, phonon.ens)
    np.testing.assert_array_equal(phonon2.ibz2fbz_map, phonon.ibz2fbz_map)
    np.testing.assert_array_equal(phonon2.isotope.matel, [2.0])
    assert phonon2.substitution is None
    assert electron2.chempot == pytest.approx(0.01)
    assert electron2.fsthick == pytest.approx(0.5)
    np.testing.assert_array_equal(electron2.bandlist, [4, 5])
    assert sorted(rates2) == sorted(rates)

    with pytest.raises(ValueError, match="Temperature 300 not found"):
        load_system(path, 300)

    save_system(path, crystal, phonon)
    _, _, electron3, rates3 = load_system(path, DEFAULT_TEMPERATURE)
    assert electron3 is None and rates3 == {}
