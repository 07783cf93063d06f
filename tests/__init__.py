"""Test suite for the dragBTE package.

This file contains helper functions that build small systems, most of them with trivial symmetry, and transition
stores for them.
"""

import os

os.environ.setdefault("DRAGBTE_BACKEND", "cpu")

import numpy as np  # noqa: E402
from dragBTE.base import Crystal, Electron, Phonon  # noqa: E402
from dragBTE.io import MemoryTransitionStore  # noqa: E402
from dragBTE.parallel import Communicator  # noqa: E402

from .defaults import (  # noqa: E402
    DEFAULT_TEMPERATURE,
    DEFAULT_VOLUME,
    EL_ENERGIES,
    EL_TRANSITIONS,
    EL_VELOCITY,
    PH_ENERGIES,
    PH_TRANSITIONS,
    PH_VELOCITY,
)


def make_crystal(temperature=DEFAULT_TEMPERATURE, crotations=None, **kwargs):
    """Crystal with a unit reciprocal lattice and, by default, only the identity operation."""
    crotations = np.eye(3)[None] if crotations is None else crotations
    return Crystal(temperature, DEFAULT_VOLUME, np.eye(3), crotations, **kwargs)


def make_species(cls, ens, vels, mesh=None, symmetrizers=None, **kwargs):
    """Species on a mesh where every point is its own irreducible point."""
    ens = np.asarray(ens, dtype=np.float64)
    vels = np.asarray(vels, dtype=np.float64)
    nk = ens.shape[0]
    mesh = (nk, 1, 1) if mesh is None else mesh
    ibz2fbz_map = np.zeros((nk, 1, 2), dtype=np.int64)
    ibz2fbz_map[:, 0, 1] = np.arange(nk)
    if symmetrizers is None:
        symmetrizers = np.tile(np.eye(3), (nk, 1, 1))
    return cls(
        mesh,
        ens,
        vels,
        ens,
        vels,
        np.ones(nk, dtype=np.int64),
        ibz2fbz_map,
        np.arange(nk)[None],
        symmetrizers,
        **kwargs,
    )


def along_x(value, shape):
    """Velocities of magnitude `value` along x for every state of `shape`."""
    vels = np.zeros(tuple(shape) + (3,))
    vels[..., 0] = value
    return vels


def make_phonon(**kwargs):
    """Two-point, two-branch phonon toy system."""
    return make_species(Phonon, PH_ENERGIES, along_x(PH_VELOCITY, (2, 2)), **kwargs)


def make_electron(**kwargs):
    """Two-point, two-band electron toy system with the chemical potential at zero."""
    return make_species(Electron, EL_ENERGIES, along_x(EL_VELOCITY, (2, 2)), **kwargs)


def ph_store(nstates=4):
    """Phonon store with an explicit, empty record for every state and channel."""
    return MemoryTransitionStore.empty(PH_TRANSITIONS, nstates)


def el_store(nstates=4):
    """Electron store with an explicit, empty record for every state and channel."""
    return MemoryTransitionStore.empty(EL_TRANSITIONS, nstates)


# 3x1x1 mesh with inversion: point 0 is invariant, points 1 and 2 are images of each other
INVERSION_ROTATIONS = np.array([np.eye(3), -np.eye(3)])
INVERSION_QROTATIONS = np.array([np.eye(3, dtype=np.int64), -np.eye(3, dtype=np.int64)])


def make_inversion_species(cls, ens_irred, vx_irred, **kwargs):
    """Single-band species on a 3x1x1 mesh whose irreducible points are 0 and 1."""
    ens_irred = np.asarray(ens_irred, dtype=np.float64).reshape(2, 1)
    vels_irred = along_x(0.0, (2, 1))
    vels_irred[:, 0, 0] = vx_irred
    ens = ens_irred[[0, 1, 1]]
    vels = vels_irred[[0, 1, 1]]
    vels[2] = -vels[2]
    ibz2fbz_map = np.array([[[0, 0], [0, 0]], [[0, 1], [1, 2]]], dtype=np.int64)
    equiv_map = np.array([[0, 1, 2], [0, 2, 1]], dtype=np.int64)
    symmetrizers = np.array([np.zeros((3, 3)), np.eye(3), np.eye(3)])
    return cls(
        (3, 1, 1),
        ens,
        vels,
        ens_irred,
        vels_irred,
        np.array([1, 2], dtype=np.int64),
        ibz2fbz_map,
        equiv_map,
        symmetrizers,
        **kwargs,
    )


def make_inversion_crystal(temperature=DEFAULT_TEMPERATURE, **kwargs):
    """Crystal with the identity and the inversion as its point group."""
    return make_crystal(temperature, crotations=INVERSION_ROTATIONS, qrotations=INVERSION_QROTATIONS, **kwargs)


def el_response(nk=2, nb=2):
    """Electron response with ``R[k, b] = (2k + b + 1, 0, 0)``."""
    response = np.zeros((nk, nb, 3))
    response[..., 0] = np.arange(1, nk * nb + 1).reshape(nk, nb)
    return response


class FakeCommunicator(Communicator):
    """Communicator pretending to be one of several workers, the reductions are identities."""

    def __init__(self, rank, size):
        self._rank = rank
        self._size = size
        self.aborted = None

    @property
    def rank(self):
        return self._rank

    @property
    def size(self):
        return self._size

    def barrier(self):
        pass

    def allreduce_sum(self, array):
        return array

    def bcast(self, obj, root=0):
        return obj

    def abort(self, errorcode=1):
        self.aborted = errorcode
