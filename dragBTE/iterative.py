"""Fixed-point sweeps of the linearized electron and phonon BTEs.

One sweep maps a response function ``R`` to ``R' = FieldTerm + tau * sum_proc W * R(partners)``. The IBZ states are
distributed over the workers, each source state writes all of its FBZ images, and the partial results are summed over
the workers before they are symmetrized.
"""

import numpy as np
from scipy.constants import elementary_charge, hbar

from . import xp
from .base import demux_vector, mux_vector, symmetrize_response
from .parallel import SerialCommunicator, distribute_points
from .profiling import annotate

HBAR_EVPS = hbar / elementary_charge * 1e12
# converts the B-field term to C nm (E field) or eV nm/K (T gradient)
BFIELD_UNIT_FACTOR = 1.0e-6 / HBAR_EVPS


def _lifetime(rates, ik_ibz, band):
    rate = float(rates[ik_ibz, band])
    return 1.0 / rate if rate != 0.0 else 0.0


def _bfield_on(bfield):
    return bfield is not None and bool(np.any(np.asarray(bfield) != 0.0))


def _weights(*records):
    return xp.asarray(sum(rec.weights for rec in records))


def iterate_bte_ph(ph, rates, field_term, response, store, comm=None):
    """Sweep the dragless phonon BTE once.

    Parameters
    ----------
    ph : :py:class:`~dragBTE.base.Phonon`
        Phonon data, including optional isotope and substitution processes.
    rates : array-like
        Total RTA rates on the IBZ, shape (nibz, nb).
    field_term : array-like
        Phonon field term, shape (nq, nb, 3).
    response : array-like
        Current phonon response, shape (nq, nb, 3).
    store : :py:class:`~dragBTE.io.TransitionStore`
        Source of the ``Wp`` and ``Wm`` records.
    comm : :py:class:`~dragBTE.parallel.Communicator`, optional
        Communicator, serial if ``None``.

    Returns
    -------
    array-like
        Updated and symmetrized phonon response, shape (nq, nb, 3).

    """
    return _sweep_ph(ph, rates, field_term, response, store, comm)


def iterate_bte_ph_drag(ph, el, rates, field_term, response, response_el, store, comm=None):
    """Sweep the phonon BTE once including the electron drag contribution.

    The drag term adds ``spindeg * Y * (R_el[final] - R_el[initial])`` for every phonon-electron process, with
    the electron states rotated by the symmetry of the phonon image.

    Parameters
    ----------
    ph : :py:class:`~dragBTE.base.Phonon`
        Phonon data.
    el : :py:class:`~dragBTE.base.Electron`
        Electron data.
    rates : array-like
        Total phonon RTA rates on the IBZ, shape (nibz, nb).
    field_term : array-like
        Phonon field term, shape (nq, nb, 3).
    response : array-like
        Current phonon response, shape (nq, nb, 3).
    response_el : array-like
        Electron response for the same field, shape (nk, nb_el, 3).
    store : :py:class:`~dragBTE.io.TransitionStore`
        Source of the ``Wp``, ``Wm`` and ``Y`` records.
    comm : :py:class:`~dragBTE.parallel.Communicator`, optional
        Communicator, serial if ``None``.

    Returns
    -------
    array-like
        Updated and symmetrized phonon response, shape (nq, nb, 3).

    """
    return _sweep_ph(ph, rates, field_term, response, store, comm, el=el, response_el=xp.asarray(response_el))


@annotate("iterate_bte_ph", color="green")
def _sweep_ph(ph, rates, field_term, response, store, comm, el=None, response_el=None):
    comm = SerialCommunicator() if comm is None else comm
    rates = xp.asarray(rates)
    field_term = xp.asarray(field_term)
    response = xp.asarray(response)
    nb = ph.numbands
    out = xp.zeros_like(field_term)

    for istate in distribute_points(ph.nstates_irred, comm):
        iq_ibz, s1 = divmod(istate, nb)
        tau = _lifetime(rates, iq_ibz, s1)

        wp = store.lookup("Wp", istate)
        wm = store.lookup("Wm", istate)
        wp_w, wm_w = _weights(wp), 0.5 * _weights(wm)
        q2p, s2p = np.divmod(wp.partners[:, 0], nb)
        q3p, s3p = np.divmod(wp.partners[:, 1], nb)
        q2m, s2m = np.divmod(wm.partners[:, 0], nb)
        q3m, s3m = np.divmod(wm.partners[:, 1], nb)

        disorder = []
        for scatt in [ph.isotope, ph.substitution]:
            if scatt is not None and len(scatt):
                partners, matel = scatt.select(istate)
                if partners.size:
                    disorder.append((*np.divmod(partners, nb), xp.asarray(matel)))

        if response_el is not None:
            y = store.lookup("Y", istate)
            y_w = el.spindeg * _weights(y)
            ki, mi = np.divmod(y.partners[:, 0], el.numbands)
            kf, mf = np.divmod(y.partners[:, 1], el.numbands)

        for ieq in range(ph.nequiv[iq_ibz]):
            isym, iq_fbz = ph.ibz2fbz_map[iq_ibz, ieq]
            emap = ph.equiv_map[isym]
            acc = xp.zeros(3, dtype=response.dtype)

            if len(wp):
                acc += wp_w @ (response[emap[q3p], s3p] - response[emap[q2p], s2p])
            if len(wm):
                acc += wm_w @ (response[emap[q3m], s3m] + response[emap[q2m], s2m])
            for q2, s2, matel in disorder:
                acc += matel @ response[emap[q2], s2]
            if response_el is not None and len(y):
                eemap = el.equiv_map[isym]
                aux1 = el.active_index(eemap[ki])
                aux2 = el.active_index(eemap[kf])
                acc += y_w @ (response_el[aux2, mf] - response_el[aux1, mi])

            out[iq_fbz, s1] = field_term[iq_fbz, s1] + tau * acc

    out = comm.allreduce_sum(out)
    return symmetrize_response(out, ph.symmetrizers)


@annotate("iterate_bte_el", color="blue")
def iterate_bte_el(
    el, crystal, rates, field_term, response, store, comm=None, drag_term=None, elchimp=False, elel=False, bfield=None
):
    """Sweep the electron BTE once.

    Parameters
    ----------
    el : :py:class:`~dragBTE.base.Electron`
        Electron data.
    crystal : :py:class:`~dragBTE.base.Crystal`
        Crystal data, the reciprocal lattice is needed for the B-field term.
    rates : array-like
        Total electron RTA rates on the IBZ, shape (nibz, nb).
    field_term : array-like
        Electron field term, shape (nk, nb, 3).
    response : array-like
        Current electron response, shape (nk, nb, 3).
    store : :py:class:`~dragBTE.io.TransitionStore`
        Source of the ``Xplus``, ``Xminus`` and optionally ``Xchimp`` and ``Xee`` records.
    comm : :py:class:`~dragBTE.parallel.Communicator`, optional
        Communicator, serial if ``None``.
    drag_term : array-like, optional
        Phonon drag term added after the reduction, shape (nk, nb, 3).
    elchimp : bool, optional
        Include charged-impurity scattering.
    elel : bool, optional
        Include electron-electron scattering.
    bfield : array-like, optional
        Magnetic field [T], shape (3,). A nonzero field adds the Lorentz term and disables symmetrization.

    Returns
    -------
    array-like
        Updated electron response, shape (nk, nb, 3).

    Raises
    ------
    ValueError
        If the ``Xplus`` and ``Xminus`` records of a state differ in length.

    """
    comm = SerialCommunicator() if comm is None else comm
    rates = xp.asarray(rates)
    field_term = xp.asarray(field_term)
    response = xp.asarray(response)
    nb = el.numbands
    out = xp.zeros_like(field_term)

    bfield_on = _bfield_on(bfield)
    if bfield_on:
        bfield = xp.asarray(bfield, dtype=xp.float64)
        jacobian = response_jacobian(response, el, crystal.reclattvecs)

    for istate in distribute_points(el.nstates_irred, comm):
        ik_ibz, m = divmod(istate, nb)
        if not el.in_window(ik_ibz, m):
            continue
        tau = _lifetime(rates, ik_ibz, m)

        xplus = store.lookup("Xplus", istate)
        xminus = store.lookup("Xminus", istate)
        if len(xplus) != len(xminus):
            raise ValueError(f"Xplus and Xminus of state {istate} differ in length: {len(xplus)} != {len(xminus)}")
        x_w = _weights(xplus, xminus)
        kf, nf = np.divmod(xplus.partners[:, 0], nb)

        if elchimp:
            chimp = store.lookup("Xchimp", istate)
            chimp_w = _weights(chimp)
            kc, nc = np.divmod(chimp.partners[:, 0], nb)
        if elel:
            ee = store.lookup("Xee", istate)
            ee_w = _weights(ee)
            k2, n2 = np.divmod(ee.partners[:, 0], nb)
            k3, n3 = np.divmod(ee.partners[:, 1], nb)
            k4, n4 = np.divmod(ee.partners[:, 2], nb)

        for ieq in range(el.nequiv[ik_ibz]):
            isym, ik_global = el.ibz2fbz_map[ik_ibz, ieq]
            ik_fbz = el.active_index(ik_global)
            emap = el.equiv_map[isym]
            acc = xp.zeros(3, dtype=response.dtype)

            if len(xplus):
                acc += x_w @ response[el.active_index(emap[kf]), nf]
            if elchimp and len(chimp):
                acc += chimp_w @ response[el.active_index(emap[kc]), nc]
            if elel and len(ee):
                acc += ee_w @ (
                    -response[el.active_index(emap[k2]), n2]
                    + response[el.active_index(emap[k3]), n3]
                    + response[el.active_index(emap[k4]), n4]
                )
            if bfield_on:
                acc += BFIELD_UNIT_FACTOR * (jacobian[ik_fbz, m] @ xp.cross(el.vels[ik_fbz, m], bfield))

            out[ik_fbz, m] = field_term[ik_fbz, m] + tau * acc

    out = comm.allreduce_sum(out)
    if drag_term is not None:
        out = out + xp.asarray(drag_term)

    # TODO: generalize the symmetrization to the little group of a nonzero B field
    if not bfield_on:
        out = symmetrize_response(out, el.symmetrizers)
    return out


def iterate(species, *args, **kwargs):
    """Dispatch one BTE sweep on the particle species.

    Phonons go to :py:func:`iterate_bte_ph_drag` when a ``response_el`` keyword is given and to
    :py:func:`iterate_bte_ph` otherwise, electrons to :py:func:`iterate_bte_el`.

    Parameters
    ----------
    species : :py:class:`~dragBTE.base.Species`
        Particle species.
    *args, **kwargs
        Passed on to the sweep, without the species for the phonon entries.

    """
    if species.prefix == "ph":
        if kwargs.get("response_el") is not None:
            el = kwargs.pop("el")
            response_el = kwargs.pop("response_el")
            rates, field_term, response, store = args[:4]
            return iterate_bte_ph_drag(
                species, el, rates, field_term, response, response_el, store, *args[4:], **kwargs
            )
        kwargs.pop("response_el", None)
        kwargs.pop("el", None)
        return iterate_bte_ph(species, *args, **kwargs)
    if species.prefix == "el":
        return iterate_bte_el(species, *args, **kwargs)
    raise ValueError(f"Unknown particle species: {species.prefix}")


def response_jacobian(response, species, reclattvecs):
    """Finite-difference Jacobian of a response function with respect to the Cartesian wavevector.

    Derivatives are taken along the reduced mesh directions. A central difference is used when both neighbours are
    active points, a one-sided difference when only one of them is, and zero otherwise.

    Parameters
    ----------
    response : array-like
        Response function, shape (nk, nb, 3).
    species : :py:class:`~dragBTE.base.Species`
        Species providing the mesh and the active index list.
    reclattvecs : array-like
        Reciprocal lattice vectors as rows [1/nm], shape (3, 3).

    Returns
    -------
    array-like
        ``J[k, b, a, c] = dR_a / dk_c`` [nm times the response unit], shape (nk, nb, 3, 3).

    """
    response = xp.asarray(response)
    nk, nb, _ = response.shape
    mesh = species.mesh
    vecs = demux_vector(species.indexlist, mesh)
    dRdx = xp.zeros((nk, nb, 3, 3), dtype=response.dtype)

    for i in range(3):
        if mesh[i] == 1:
            continue
        step = np.zeros(3, dtype=np.int64)
        step[i] = 1
        plus = species.active_index(mux_vector((vecs + step) % mesh, mesh), strict=False)
        minus = species.active_index(mux_vector((vecs - step) % mesh, mesh), strict=False)
        dx = 1.0 / mesh[i]

        both = np.nonzero((plus >= 0) & (minus >= 0))[0]
        fwd = np.nonzero((plus >= 0) & (minus < 0))[0]
        bwd = np.nonzero((plus < 0) & (minus >= 0))[0]
        dRdx[both, :, :, i] = (response[plus[both]] - response[minus[both]]) / (2 * dx)
        dRdx[fwd, :, :, i] = (response[plus[fwd]] - response[fwd]) / dx
        dRdx[bwd, :, :, i] = (response[bwd] - response[minus[bwd]]) / dx

    # x_i = k . inv(B)[:, i] for reciprocal lattice rows B
    dxdk = xp.asarray(np.linalg.inv(np.asarray(reclattvecs, dtype=np.float64)))
    return xp.einsum("kbai,ci->kbac", dRdx, dxdk)
