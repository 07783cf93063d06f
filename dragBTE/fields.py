"""Module for setting up the field-coupling terms of the linearized BTE."""

import numpy as np
from scipy.constants import elementary_charge

from . import xp
from .parallel import SerialCommunicator, distribute_points

SPECIES = ["ph", "el"]
FIELDS = ["T", "E"]


def field_coefficients(prefix, field, temperature):
    """Return the prefactor and energy power of the field term.

    Parameters
    ----------
    prefix : {'ph', 'el'}
        Particle species.
    field : {'T', 'E'}
        Temperature gradient or electric field.
    temperature : float
        Temperature [K].

    Returns
    -------
    A : float
        Prefactor, ``0`` when the field does not couple to the species.
    pow : int
        Power of ``(e - mu)``.

    Raises
    ------
    ValueError
        For an unknown species or field.

    """
    if prefix not in SPECIES:
        raise ValueError(f"Unknown particle species: {prefix}")
    if field not in FIELDS:
        raise ValueError(f"Unknown field type: {field}")
    if field == "T":
        return 1.0 / temperature, 1
    if prefix == "el":
        return elementary_charge, 0
    return 0.0, 0


def field_term(species, field, rates, temperature, comm=None):
    """Construct the field-coupling term of a species.

    Parameters
    ----------
    species : :py:class:`~dragBTE.base.Species`
        Phonon or electron data.
    field : {'T', 'E'}
        Temperature gradient or electric field.
    rates : array-like
        Total RTA rates on the IBZ [1/ps], shape (nibz, nb).
    temperature : float
        Temperature [K].
    comm : :py:class:`~dragBTE.parallel.Communicator`, optional
        Communicator used to partition the IBZ and reduce the result.

    Returns
    -------
    array-like
        Field term on the active FBZ points, shape (nk, nb, 3). Units are nm eV/K for temperature gradients and
        nm C for electric fields.

    See Also
    --------
    :py:func:`~dragBTE.fields._field_term` : Array-level implementation.

    """
    indexlist = species.indexlist if species.prefix == "el" else None
    return _field_term(
        species.prefix,
        field,
        species.nequiv,
        species.ibz2fbz_map,
        temperature,
        species.chempot,
        species.ens,
        species.vels,
        rates,
        indexlist=indexlist,
        comm=comm,
    )


def _field_term(
    prefix, field, nequiv, ibz2fbz_map, temperature, chempot, ens, vels, rta_rates_ibz, indexlist=None, comm=None
):
    """Array-level implementation of :py:func:`field_term`.

    Every IBZ point of this worker writes ``A * v * (e - mu)**pow / rate`` to all of its FBZ images. States with a
    vanishing rate keep a zero field term. Electron images are located in the sorted `indexlist`, images outside of
    the transport window are skipped.

    Parameters
    ----------
    prefix : {'ph', 'el'}
        Particle species.
    field : {'T', 'E'}
        Field type.
    nequiv : numpy.ndarray
        Number of images per IBZ point, shape (nibz,).
    ibz2fbz_map : numpy.ndarray
        Image map, shape (nibz, maxeq, 2).
    temperature : float
        Temperature [K].
    chempot : float
        Chemical potential [eV], must be zero for phonons.
    ens : array-like
        Energies on the active FBZ points, shape (nk, nb).
    vels : array-like
        Velocities on the active FBZ points, shape (nk, nb, 3).
    rta_rates_ibz : array-like
        IBZ rates, shape (nibz, nb).
    indexlist : numpy.ndarray, optional
        Sorted global indices of the active points. If ``None``, global indices are used directly.
    comm : :py:class:`~dragBTE.parallel.Communicator`, optional
        Communicator, serial if ``None``.

    Returns
    -------
    array-like
        Field term, shape (nk, nb, 3).

    """
    A, pow = field_coefficients(prefix, field, temperature)
    if prefix == "ph" and chempot != 0.0:
        raise ValueError(f"Phonon chemical potential must be zero, got {chempot}")

    comm = SerialCommunicator() if comm is None else comm
    ens = xp.asarray(ens)
    vels = xp.asarray(vels)
    rta_rates_ibz = xp.asarray(rta_rates_ibz)
    nk, nbands = ens.shape
    if rta_rates_ibz.shape[1] != nbands:
        raise ValueError(f"Shape mismatch: rates have {rta_rates_ibz.shape[1]} bands, energies {nbands}")
    term = xp.zeros((nk, nbands, 3), dtype=xp.float64)

    # no coupling between phonons and an electric field
    if A == 0.0:
        return term

    inv_rates = xp.zeros_like(rta_rates_ibz)
    nonzero = rta_rates_ibz != 0.0
    inv_rates[nonzero] = 1.0 / rta_rates_ibz[nonzero]

    for ik_ibz in distribute_points(rta_rates_ibz.shape[0], comm):
        images = ibz2fbz_map[ik_ibz, : nequiv[ik_ibz], 1]
        if indexlist is not None:
            pos = np.searchsorted(indexlist, images)
            pos_c = np.minimum(pos, len(indexlist) - 1)
            images = pos_c[indexlist[pos_c] == images]
        if images.size == 0:
            continue
        en_factor = (ens[images] - chempot) ** pow
        term[images] = A * vels[images] * (en_factor * inv_rates[ik_ibz][None, :])[..., None]

    return comm.allreduce_sum(term)
