"""IO module for coupled electron-phonon BTE calculations.

This module provides keyed stores for the microscopic transition probabilities consumed by the iterative solvers, an
HDF5 container for response functions, rate tables and transport tensors, and loaders for the band structure and
symmetry input of a calculation.
"""

import contextlib
import json
import os
from typing import NamedTuple, Protocol, runtime_checkable

import bitshuffle.h5
import h5py
import numpy as np

from . import to_cpu
from .base import Crystal, Electron, Phonon, SelfScattering

SCHEMA = "dragbte-results/1"
TRANSITION_SCHEMA = "dragbte-transitions/1"

# number of partner states per process
CHANNELS = {
    "Wp": 2,
    "Wm": 2,
    "Y": 2,
    "Xplus": 2,
    "Xminus": 2,
    "Xchimp": 1,
    "Xee": 3,
}


def temperature_tag(temperature):
    """Return the directory/group name used for `temperature`, e.g. ``'T3.000e+02'``."""
    return f"T{float(temperature):.3e}"


def _ensure(f, name, nrows, row_shape, dtype=np.float64, **kwargs):
    """Return a dataset of exactly `nrows` rows, growing or truncating it as needed.

    Missing datasets are created resizable along the first axis with one chunk per row.

    Parameters
    ----------
    f : h5py.File or h5py.Group
        Open HDF5 file or group.
    name : str
        Name of the dataset.
    nrows : int
        Number of rows the dataset holds afterwards.
    row_shape : tuple of int
        Shape of one row.
    dtype : dtype or str, optional
        Data type of a newly created dataset.
    **kwargs : dict
        Additional keyword arguments passed to `h5py.File.create_dataset`.

    Returns
    -------
    h5py.Dataset
        The resized or newly created dataset.

    Raises
    ------
    ValueError
        If an existing dataset has a different row shape.

    """
    row_shape = tuple(row_shape)
    if name not in f:
        return f.create_dataset(
            name,
            shape=(nrows,) + row_shape,
            maxshape=(None,) + row_shape,
            chunks=(1,) + row_shape,
            dtype=np.dtype(dtype),
            **kwargs,
        )
    dset = f[name]
    if dset.shape[1:] != row_shape:
        raise ValueError(f"Tensor shape {row_shape} != {dset.shape[1:]} stored for {name}.")
    if dset.shape[0] != nrows:
        dset.resize((nrows,) + row_shape)
    return dset


def _compression_kwargs(compression):
    if compression is None:
        return {}
    if compression == "bitshuffle":
        return {"compression": bitshuffle.h5.H5FILTER, "compression_opts": (0, bitshuffle.h5.H5_COMPRESS_LZ4)}
    raise ValueError(f"Unknown compression: {compression}")


class TransitionRecord(NamedTuple):
    """Processes starting from one IBZ state.

    Attributes
    ----------
    weights : numpy.ndarray
        Transition probabilities [1/ps], shape (n,).
    partners : numpy.ndarray
        Partner state indices, shape (n, p).

    """

    weights: np.ndarray
    partners: np.ndarray

    def __len__(self):
        """Return the number of processes."""
        return self.weights.shape[0]


def _make_record(channel, weights, partners):
    if channel not in CHANNELS:
        raise KeyError(f"Unknown transition channel: {channel}")
    weights = np.asarray(weights, dtype=np.float64).reshape(-1)
    partners = np.asarray(partners, dtype=np.int64).reshape(weights.shape[0], CHANNELS[channel])
    return TransitionRecord(weights, partners)


def _empty_record(channel):
    return _make_record(channel, np.zeros(0), np.zeros((0, CHANNELS[channel]), dtype=np.int64))


@runtime_checkable
class TransitionStore(Protocol):
    """Used for type checking transition probability stores.

    ``lookup(channel, istate)`` returns the :py:class:`TransitionRecord` of IBZ state `istate` in `channel` and raises
    :py:class:`KeyError` for unknown channels or records.
    """

    def lookup(self, channel: str, istate: int) -> TransitionRecord: ...


class MemoryTransitionStore:
    """Transition store holding all records in memory.

    Parameters
    ----------
    records : dict, optional
        Mapping ``(channel, istate) -> (weights, partners)``.
    strict : bool, optional
        If ``True`` (default), missing records raise :py:class:`KeyError`. Otherwise they are treated as having no
        processes.

    """

    def __init__(self, records=None, strict=True):
        """Initialize the MemoryTransitionStore."""
        self.strict = strict
        self._records = {}
        for (channel, istate), (weights, partners) in (records or {}).items():
            self.put(channel, istate, weights, partners)

    @classmethod
    def empty(cls, channels, nstates):
        """Return a store in which every state of `channels` has an explicit record without processes.

        Parameters
        ----------
        channels : Sequence[str]
            Channel names.
        nstates : int
            Number of IBZ states.

        """
        store = cls()
        for channel in channels:
            for istate in range(nstates):
                store._records[(channel, istate)] = _empty_record(channel)
        return store

    def put(self, channel, istate, weights, partners):
        """Add or replace a record."""
        self._records[(channel, int(istate))] = _make_record(channel, weights, partners)

    def lookup(self, channel, istate):
        """Return the record of `istate` in `channel`."""
        if channel not in CHANNELS:
            raise KeyError(f"Unknown transition channel: {channel}")
        key = (channel, int(istate))
        if key in self._records:
            return self._records[key]
        if self.strict:
            raise KeyError(f"No {channel} record for state {istate}.")
        return _empty_record(channel)

    def channels(self):
        """Return the channels with at least one record."""
        return sorted({channel for channel, _ in self._records})


class OnTheFlyTransitionStore:
    """Transition store computing records on demand.

    Parameters
    ----------
    generator : Callable[[str, int], tuple]
        Called as ``generator(channel, istate)`` and returning ``(weights, partners)``.
    cache : bool, optional
        If ``True``, computed records are kept for subsequent lookups.

    """

    def __init__(self, generator, cache=False):
        """Initialize the OnTheFlyTransitionStore."""
        self.generator = generator
        self.cache = cache
        self._cache = {}

    def lookup(self, channel, istate):
        """Compute, or fetch from the cache, the record of `istate` in `channel`."""
        if channel not in CHANNELS:
            raise KeyError(f"Unknown transition channel: {channel}")
        key = (channel, int(istate))
        if key in self._cache:
            return self._cache[key]
        record = _make_record(channel, *self.generator(channel, int(istate)))
        if self.cache:
            self._cache[key] = record
        return record


class HDF5TransitionStore:
    """Transition store backed by an HDF5 file in compressed sparse row layout.

    Each channel is a group with datasets ``offsets`` (nstates + 1), ``weights`` (n,) and ``partners`` (n, p). The
    processes of state ``i`` are ``offsets[i]:offsets[i+1]``. Channel groups may be nested in a temperature group
    named by :py:func:`temperature_tag`.

    Parameters
    ----------
    path : str
        Path to the HDF5 file.
    temperature : float, optional
        Temperature whose group is read. If ``None``, channels are read from the file root.

    """

    def __init__(self, path, temperature=None):
        """Initialize the HDF5TransitionStore."""
        self.path = path
        self.f = h5py.File(path, "r")
        if temperature is None:
            self.root = self.f
        else:
            tag = temperature_tag(temperature)
            if tag not in self.f:
                self.f.close()
                raise KeyError(f"Temperature {temperature} not found in {path}.")
            self.root = self.f[tag]
        self._offsets = {}

    def __enter__(self):
        """Enter the context manager, returning self."""
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        """Exit the context manager, closing the file."""
        self.close()

    def close(self):
        """Close the underlying HDF5 file."""
        with contextlib.suppress(Exception):
            self.f.close()

    def channels(self):
        """Return the channels stored in the file."""
        return sorted(name for name in self.root if name in CHANNELS)

    def lookup(self, channel, istate):
        """Read the record of `istate` in `channel`."""
        if channel not in CHANNELS:
            raise KeyError(f"Unknown transition channel: {channel}")
        if channel not in self.root:
            raise KeyError(f"Channel {channel} not found in {self.path}.")
        if channel not in self._offsets:
            self._offsets[channel] = self.root[channel]["offsets"][...]
        offsets = self._offsets[channel]
        if not 0 <= istate < offsets.shape[0] - 1:
            raise KeyError(f"No {channel} record for state {istate}.")
        start, stop = int(offsets[istate]), int(offsets[istate + 1])
        grp = self.root[channel]
        return _make_record(channel, grp["weights"][start:stop], grp["partners"][start:stop])


def write_transition_probs(path, channel, records, nstates, temperature=None):
    """Write one channel of transition probabilities in the layout read by :py:class:`HDF5TransitionStore`.

    Parameters
    ----------
    path : str
        Path to the HDF5 file, created if missing.
    channel : str
        Channel name, one of :py:data:`CHANNELS`.
    records : dict
        Mapping ``istate -> (weights, partners)``. Missing states have no processes.
    nstates : int
        Number of IBZ states.
    temperature : float, optional
        Temperature group to write into.

    """
    if channel not in CHANNELS:
        raise KeyError(f"Unknown transition channel: {channel}")
    counts = np.zeros(nstates + 1, dtype=np.int64)
    weights, partners = [], []
    for istate in range(nstates):
        if istate in records:
            rec = _make_record(channel, *records[istate])
        else:
            rec = _empty_record(channel)
        counts[istate + 1] = len(rec)
        weights.append(rec.weights)
        partners.append(rec.partners)
    extra = set(records) - set(range(nstates))
    if extra:
        raise KeyError(f"States {sorted(extra)} exceed the {nstates} IBZ states.")

    with h5py.File(path, "a") as f:
        f.attrs["schema"] = TRANSITION_SCHEMA
        root = f if temperature is None else f.require_group(temperature_tag(temperature))
        if channel in root:
            del root[channel]
        grp = root.create_group(channel)
        grp.create_dataset("offsets", data=np.cumsum(counts))
        grp.create_dataset("weights", data=np.concatenate(weights))
        grp.create_dataset("partners", data=np.concatenate(partners).reshape(-1, CHANNELS[channel]))


class ResultContainer:
    """Container for the results of one temperature in an HDF5 file.

    The file ``bte.hdf5`` lives in a directory named by :py:func:`temperature_tag` below `output_dir`. Response
    functions are stored under ``responses/<label>``, rate tables under ``rates/<prefix>/<channel>`` and transport
    tensor histories under ``transport/<label>`` as resizable datasets indexed by iteration.

    Parameters
    ----------
    output_dir : str
        Base output directory.
    temperature : float
        Temperature of the results.
    compression : {'bitshuffle', None}, optional
        Compression applied to response functions.
    read_only : bool, optional
        Open an existing file for reading only.

    """

    def __init__(self, output_dir, temperature, compression="bitshuffle", read_only=False):
        """Initialize the ResultContainer."""
        self.directory = os.path.join(output_dir, temperature_tag(temperature))
        self.path = os.path.join(self.directory, "bte.hdf5")
        self.compression = compression
        if not read_only:
            os.makedirs(self.directory, exist_ok=True)
        self.f = h5py.File(self.path, "r" if read_only else "a")
        if "schema" not in self.f.attrs and not read_only:
            self.f.attrs["schema"] = SCHEMA
            self.f.attrs["temperature"] = float(temperature)

    def __enter__(self):
        """Enter the context manager, returning self."""
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        """Exit the context manager, closing the file."""
        self.close()

    def close(self):
        """Close the underlying HDF5 file."""
        with contextlib.suppress(Exception):
            self.f.close()

    def write_response(self, label, tensor, bandlist=None):
        """Store a response function, replacing an existing one with the same label.

        Parameters
        ----------
        label : str
            Label such as ``'nodrag_I0'``.
        tensor : array-like
            Response function, shape (nk, nb, 3).
        bandlist : array-like, optional
            Band indices of the full band structure the columns belong to.

        """
        arr = np.ascontiguousarray(to_cpu(tensor), dtype=np.float64)
        if arr.ndim != 3 or arr.shape[-1] != 3:
            raise ValueError(f"Response functions must have shape (nk, nb, 3), got {arr.shape}.")
        name = f"responses/{label}"
        if name in self.f:
            del self.f[name]
        dset = self.f.create_dataset(name, data=arr, **_compression_kwargs(self.compression))
        if bandlist is not None:
            dset.attrs["bandlist"] = np.asarray(to_cpu(bandlist))
        self.f.flush()

    def read_response(self, label):
        """Return a stored response function as a NumPy array."""
        name = f"responses/{label}"
        if name not in self.f:
            raise KeyError(f"No response {label} in {self.path}.")
        return self.f[name][...]

    def responses(self):
        """Return the stored response labels."""
        return sorted(self.f["responses"]) if "responses" in self.f else []

    def write_rates(self, prefix, channel, table):
        """Store an RTA rate table."""
        name = f"rates/{prefix}/{channel}"
        if name in self.f:
            del self.f[name]
        self.f.create_dataset(name, data=np.asarray(to_cpu(table), dtype=np.float64))
        self.f.flush()

    def read_rates(self, prefix, channel):
        """Return a stored rate table."""
        name = f"rates/{prefix}/{channel}"
        if name not in self.f:
            raise KeyError(f"No {prefix} {channel} rates in {self.path}.")
        return self.f[name][...]

    def append_tensor(self, label, iteration, tensor):
        """Store the transport tensor of one iteration.

        Parameters
        ----------
        label : str
            Label such as ``'drag_el_sigma'``.
        iteration : int
            0-based iteration number. The history is cut after this row, so writing iteration 0 starts a new
            history and rows of an earlier run in the same file are dropped.
        tensor : array-like
            Per-band tensor, shape (nb, 3, 3).

        """
        arr = np.asarray(to_cpu(tensor), dtype=np.float64)
        dset = _ensure(self.f, f"transport/{label}", iteration + 1, arr.shape)
        dset[iteration] = arr
        self.f.flush()

    def read_tensor(self, label):
        """Return the tensor history of `label`, shape (niter, nb, 3, 3)."""
        name = f"transport/{label}"
        if name not in self.f:
            raise KeyError(f"No transport tensor {label} in {self.path}.")
        return self.f[name][...]

    def write_spectral(self, label, en_grid, hc, cc):
        """Store spectral coefficients of the response `label` under ``spectral/<label>``.

        Parameters
        ----------
        label : str
            Response label such as ``'drag_I0'``.
        en_grid : array-like
            Energy grid [eV], shape (ne,).
        hc, cc : array-like
            Spectral coefficients, shape (nb, 3, 3, ne).

        """
        name = f"spectral/{label}"
        if name in self.f:
            del self.f[name]
        grp = self.f.create_group(name)
        grp.create_dataset("en_grid", data=np.asarray(to_cpu(en_grid), dtype=np.float64))
        grp.create_dataset("hc", data=np.asarray(to_cpu(hc), dtype=np.float64))
        grp.create_dataset("cc", data=np.asarray(to_cpu(cc), dtype=np.float64))
        self.f.flush()

    def read_spectral(self, label):
        """Return the stored energy grid and spectral ``(hc, cc)`` of the response `label`."""
        name = f"spectral/{label}"
        if name not in self.f:
            raise KeyError(f"No spectral coefficients {label} in {self.path}.")
        grp = self.f[name]
        return grp["en_grid"][...], grp["hc"][...], grp["cc"][...]

    def write_metadata(self, command_line_args=None, **kwargs):
        """Store run metadata as JSON attributes."""
        if command_line_args is not None:
            args = {k: (v.tolist() if hasattr(v, "tolist") else v) for k, v in vars(command_line_args).items()}
            self.f.attrs["command_line_args"] = json.dumps(args, default=str)
        for key, value in kwargs.items():
            self.f.attrs[key] = json.dumps(value, default=str)
        self.f.flush()


_CRYSTAL_ARRAYS = ["reclattvecs", "crotations", "qrotations", "thinfilm_normal"]
_CRYSTAL_SCALARS = ["volume", "dim", "bound_length", "thinfilm_height", "specfac"]
_SPECIES_ARRAYS = [
    "mesh",
    "ens",
    "vels",
    "ens_irred",
    "vels_irred",
    "nequiv",
    "ibz2fbz_map",
    "equiv_map",
    "symmetrizers",
    "indexlist",
    "indexlist_irred",
]


def save_system(path, crystal, phonon, electron=None, rates=None, temperature=None):
    """Write crystal, band and rate data in the layout read by :py:func:`load_system`.

    Parameters
    ----------
    path : str
        Output HDF5 file, overwritten.
    crystal : :py:class:`~dragBTE.base.Crystal`
        Crystal data.
    phonon : :py:class:`~dragBTE.base.Phonon`
        Phonon data.
    electron : :py:class:`~dragBTE.base.Electron`, optional
        Electron data.
    rates : dict, optional
        Mapping ``(prefix, channel) -> table`` of channel rates at `temperature`.
    temperature : float, optional
        Temperature of `rates`, defaults to the crystal temperature.

    """
    temperature = crystal.temperature if temperature is None else temperature
    with h5py.File(path, "w") as f:
        grp = f.create_group("crystal")
        for key in _CRYSTAL_ARRAYS:
            grp.create_dataset(key, data=getattr(crystal, key))
        for key in _CRYSTAL_SCALARS:
            value = getattr(crystal, key)
            if value is not None:
                grp.attrs[key] = value
        for species in [phonon, electron]:
            if species is None:
                continue
            grp = f.create_group(species.prefix)
            for key in _SPECIES_ARRAYS:
                grp.create_dataset(key, data=to_cpu(getattr(species, key)))
            grp.attrs["chempot"] = species.chempot
            if species.prefix == "el":
                grp.attrs["spindeg"] = species.spindeg
                grp.attrs["enref"] = species.enref
                grp.attrs["fsthick"] = species.fsthick
                grp.create_dataset("bandlist", data=species.bandlist)
            else:
                for kind in ["isotope", "substitution"]:
                    scatt = getattr(species, kind)
                    if scatt is not None:
                        sub = grp.create_group(kind)
                        sub.create_dataset("indexes", data=scatt.indexes)
                        sub.create_dataset("matel", data=scatt.matel)
        grp = f.create_group(f"rates/{temperature_tag(temperature)}")
        for (prefix, channel), table in (rates or {}).items():
            grp.create_dataset(f"{prefix}/{channel}", data=to_cpu(table))


def load_system(path, temperature):
    """Load crystal, band and rate data for one temperature.

    Parameters
    ----------
    path : str
        HDF5 file written by :py:func:`save_system`.
    temperature : float
        Temperature [K].

    Returns
    -------
    crystal : :py:class:`~dragBTE.base.Crystal`
        Crystal at `temperature`.
    phonon : :py:class:`~dragBTE.base.Phonon`
        Phonon data.
    electron : :py:class:`~dragBTE.base.Electron` or None
        Electron data, if present.
    rates : dict
        Mapping ``(prefix, channel) -> table``.

    Raises
    ------
    ValueError
        If no rates are stored for `temperature`.

    """
    with h5py.File(path, "r") as f:
        available = sorted(f["rates"]) if "rates" in f else []
        tag = temperature_tag(temperature)
        if tag not in available:
            raise ValueError(f"Temperature {temperature} not found in the input file. Available: {available}")

        grp = f["crystal"]
        crystal = Crystal(
            temperature,
            grp.attrs["volume"],
            grp["reclattvecs"][...],
            grp["crotations"][...],
            qrotations=grp["qrotations"][...],
            dim=int(grp.attrs.get("dim", 3)),
            bound_length=grp.attrs.get("bound_length"),
            thinfilm_height=grp.attrs.get("thinfilm_height"),
            thinfilm_normal=grp["thinfilm_normal"][...],
            specfac=float(grp.attrs.get("specfac", 0.0)),
            name=os.path.basename(path),
        )

        grp = f["ph"]
        kwargs = {key: grp[key][...] for key in _SPECIES_ARRAYS}
        for kind in ["isotope", "substitution"]:
            if kind in grp:
                kwargs[kind] = SelfScattering(grp[kind]["indexes"][...], grp[kind]["matel"][...])
        phonon = Phonon(**kwargs)

        electron = None
        if "el" in f:
            grp = f["el"]
            kwargs = {key: grp[key][...] for key in _SPECIES_ARRAYS}
            electron = Electron(
                **kwargs,
                chempot=float(grp.attrs["chempot"]),
                spindeg=int(grp.attrs["spindeg"]),
                enref=float(grp.attrs["enref"]),
                fsthick=float(grp.attrs["fsthick"]),
                bandlist=grp["bandlist"][...],
            )

        rates = {}
        for prefix, sub in f["rates"][tag].items():
            for channel, dset in sub.items():
                rates[(prefix, channel)] = dset[...]

    return crystal, phonon, electron, rates
