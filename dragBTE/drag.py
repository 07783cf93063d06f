r"""Phonon drag coupling of the electron BTE.

The phonon response enters the electron BTE through the drag term

.. math::

    D_{m\mathbf{k}} = -\tau_{m\mathbf{k}} \sum_{\text{proc}} (X^+ + X^-) F_{s\mathbf{q}},

where the transition records carry the phonon at :math:`+\mathbf{q}` and the sign uses
:math:`F(-\mathbf{q}) = -F(\mathbf{q})`. Phonons that live on the finer electron mesh are interpolated from the
phonon mesh with precomputed trilinear stencils. After each electron sweep the temperature-gradient response is
split into a diffusion and a drag part, and the drag part is rescaled to restore the Kelvin-Onsager relation.
"""

import numpy as np
from scipy.constants import elementary_charge

from . import xp
from .base import demux_vector, mux_vector
from .parallel import SerialCommunicator, distribute_points
from .profiling import annotate


class InterpolationStencil:
    """Trilinear interpolation from a coarse to a fine periodic wavevector mesh.

    Parameters
    ----------
    coarse_mesh : array-like
        Mesh the values live on, shape (3,).
    fine_mesh : array-like
        Mesh of the target points, shape (3,).

    Attributes
    ----------
    corners : numpy.ndarray
        Global coarse-mesh indices of the 8 cell corners around every fine point, shape (nfine, 8).
    weights : numpy.ndarray
        Trilinear weights of the corners, shape (nfine, 8). Each row sums to one.

    """

    def __init__(self, coarse_mesh, fine_mesh):
        """Precompute corners and weights for every point of the fine mesh."""
        self.coarse_mesh = np.asarray(coarse_mesh, dtype=np.int64).reshape(3)
        self.fine_mesh = np.asarray(fine_mesh, dtype=np.int64).reshape(3)
        nfine = int(np.prod(self.fine_mesh))

        fine = demux_vector(np.arange(nfine), self.fine_mesh)
        q = fine / self.fine_mesh * self.coarse_mesh
        i0 = np.floor(q + 1e-10).astype(np.int64)
        frac = np.clip(q - i0, 0.0, 1.0)

        self.corners = np.empty((nfine, 8), dtype=np.int64)
        self.weights = np.empty((nfine, 8), dtype=np.float64)
        for c in range(8):
            offset = np.array([c & 1, (c >> 1) & 1, (c >> 2) & 1])
            self.corners[:, c] = mux_vector((i0 + offset) % self.coarse_mesh, self.coarse_mesh)
            self.weights[:, c] = np.prod(np.where(offset == 1, frac, 1.0 - frac), axis=1)

    def interpolate(self, values, fine_indices, bands=None):
        """Interpolate coarse-mesh values onto fine-mesh points.

        Parameters
        ----------
        values : array-like
            Values on the coarse mesh, shape (ncoarse, ...) or (ncoarse, nb, ...) if `bands` is given.
        fine_indices : array-like
            Global fine-mesh indices, shape (n,).
        bands : array-like, optional
            Band of each point, shape (n,).

        Returns
        -------
        array-like
            Interpolated values, shape (n, ...).

        """
        fine_indices = np.asarray(fine_indices, dtype=np.int64)
        corners = self.corners[fine_indices]
        weights = xp.asarray(self.weights[fine_indices])
        if bands is None:
            gathered = values[corners]
        else:
            gathered = values[corners, np.asarray(bands)[:, None]]
        return xp.einsum("nc,nc...->n...", weights, gathered)


@annotate("phonon_drag_term", color="red")
def phonon_drag_term(el, ph, crystal, stencil, rates_el, response_ph, store, comm=None):
    """Compute the phonon drag term of the electron BTE.

    Parameters
    ----------
    el : :py:class:`~dragBTE.base.Electron`
        Electron data.
    ph : :py:class:`~dragBTE.base.Phonon`
        Phonon data.
    crystal : :py:class:`~dragBTE.base.Crystal`
        Crystal data, provides the reduced rotations for fine-mesh phonons.
    stencil : :py:class:`InterpolationStencil`
        Interpolation from the phonon mesh to the electron mesh.
    rates_el : array-like
        Total electron RTA rates on the IBZ, shape (nibz, nb).
    response_ph : array-like
        Phonon response for the same field, shape (nq, nbranches, 3).
    store : :py:class:`~dragBTE.io.TransitionStore`
        Source of the ``Xplus`` and ``Xminus`` records. Phonon partners on the electron mesh are tagged as
        ``-(iq_fine * nbranches + s + 1)``.
    comm : :py:class:`~dragBTE.parallel.Communicator`, optional
        Communicator, serial if ``None``.

    Returns
    -------
    array-like
        Drag term on the active electron points, shape (nk, nb, 3).

    """
    comm = SerialCommunicator() if comm is None else comm
    rates_el = xp.asarray(rates_el)
    response_ph = xp.asarray(response_ph)
    nb = el.numbands
    nbranches = ph.numbands
    out = xp.zeros((el.nk, nb, 3), dtype=xp.float64)

    for istate in distribute_points(el.nstates_irred, comm):
        ik_ibz, m = divmod(istate, nb)
        if not el.in_window(ik_ibz, m):
            continue
        rate = float(rates_el[ik_ibz, m])
        tau = 1.0 / rate if rate != 0.0 else 0.0

        xplus = store.lookup("Xplus", istate)
        xminus = store.lookup("Xminus", istate)
        if len(xplus) != len(xminus):
            raise ValueError(f"Xplus and Xminus of state {istate} differ in length: {len(xplus)} != {len(xminus)}")
        if len(xplus) == 0:
            continue
        weights = xp.asarray(xplus.weights + xminus.weights)

        ph_states = xplus.partners[:, 1]
        on_coarse = np.nonzero(ph_states >= 0)[0]
        on_fine = np.nonzero(ph_states < 0)[0]
        iq_c, s_c = np.divmod(ph_states[on_coarse], nbranches)
        iq_f, s_f = np.divmod(-ph_states[on_fine] - 1, nbranches)
        fine_vecs = demux_vector(iq_f, el.mesh)

        for ieq in range(el.nequiv[ik_ibz]):
            isym, ik_global = el.ibz2fbz_map[ik_ibz, ieq]
            ik_fbz = el.active_index(ik_global)

            forg = xp.zeros((len(xplus), 3), dtype=xp.float64)
            if on_coarse.size:
                forg[on_coarse] = response_ph[ph.equiv_map[isym, iq_c], s_c]
            if on_fine.size:
                rotated = (fine_vecs @ crystal.qrotations[isym].T) % el.mesh
                forg[on_fine] = stencil.interpolate(response_ph, mux_vector(rotated, el.mesh), bands=s_f)

            out[ik_fbz, m] = -tau * (weights @ forg)

    return comm.allreduce_sum(out)


def kelvin_onsager_split(el, temperature, response_E, response_T):
    """Split the temperature-gradient electron response into diffusion and drag parts.

    Parameters
    ----------
    el : :py:class:`~dragBTE.base.Electron`
        Electron data.
    temperature : float
        Temperature [K].
    response_E : array-like
        Electric-field response, shape (nk, nb, 3).
    response_T : array-like
        Temperature-gradient response, shape (nk, nb, 3).

    Returns
    -------
    I_diff : array-like
        ``(e - mu) / (q_e T) * response_E``.
    I_drag : array-like
        ``response_T - I_diff``.

    """
    factor = (el.ens - el.chempot) / elementary_charge / temperature
    I_diff = factor[..., None] * xp.asarray(response_E)
    return I_diff, xp.asarray(response_T) - I_diff


def correct_drag_scaling(sigma_s, constraint, lower=0.0, upper=2.0, thresh=1e-6, max_iter=100):
    """Find the scaling of the drag response that matches a Seebeck-type constraint by bisection.

    Parameters
    ----------
    sigma_s : Callable[[float], float]
        Trace-averaged sigmaS of the drag response scaled by the argument.
    constraint : float
        Target value, the trace-averaged phonon alpha/T.
    lower, upper : float, optional
        Initial bracket.
    thresh : float, optional
        Relative tolerance, ``|s - c| <= thresh * |c|``.
    max_iter : int, optional
        Maximum number of evaluations.

    Returns
    -------
    float
        Scaling factor. The midpoint of the last bracket if the tolerance was not reached.

    """
    a, b = lower, upper
    lam = 0.5 * (a + b)
    for _ in range(max_iter):
        lam = 0.5 * (a + b)
        s = sigma_s(lam)
        if abs(s - constraint) <= thresh * abs(constraint):
            break
        if abs(s) < abs(constraint):
            a = lam
        else:
            b = lam
    return lam
