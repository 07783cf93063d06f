"""Brillouin-zone sums turning response functions into transport tensors.

The integrated coefficients follow the conventions

- phonons, temperature gradient: thermal conductivity kappa [W/m/K]
- phonons, electric field: alpha/T of the phonon drag (after division by T) [A/m/K]
- electrons, temperature gradient: kappa0 [W/m/K] (heat) and sigmaS [A/m/K] (charge)
- electrons, electric field: alpha [A/m] (heat) and sigma [1/Ohm/m] (charge)

Spectral coefficients resolve the same sums in energy using a :py:class:`DeltaFunction` strategy.
"""

from abc import ABC, abstractmethod

import numpy as np
from scipy.constants import elementary_charge, k
from scipy.special import expit

from . import to_cpu, xp
from .base import demux_vector, mux_vector
from .fields import field_coefficients

KB_EV = k / elementary_charge

# corners of the six tetrahedra of a mesh cell, corner c sits at offset (c & 1, (c >> 1) & 1, (c >> 2) & 1)
TETRA_CORNERS = np.array(
    [
        [0, 1, 3, 7],
        [0, 1, 5, 7],
        [0, 2, 3, 7],
        [0, 2, 6, 7],
        [0, 4, 5, 7],
        [0, 4, 6, 7],
    ]
)


def transport_prefactors(prefix, field, temperature, volume, nmesh, deg=1):
    """Return the heat- and charge-current prefactors ``(A_hc, A_cc)``.

    Parameters
    ----------
    prefix : {'ph', 'el'}
        Particle species.
    field : {'T', 'E'}
        Field type.
    temperature : float
        Temperature [K].
    volume : float
        Primitive cell volume [nm^3].
    nmesh : int
        Number of mesh points the sum is normalized by, 1 for spectral sums.
    deg : int, optional
        Spin degeneracy of electrons.

    """
    field_coefficients(prefix, field, temperature)
    fac = 1.0e21 / KB_EV / temperature / volume / nmesh
    if prefix == "ph":
        return (elementary_charge * fac if field == "T" else -fac), 0.0
    if field == "T":
        return deg * elementary_charge * fac, -deg * elementary_charge * fac
    return -deg * fac, deg * fac


def distribution_factor(prefix, ens, chempot, temperature):
    """Return ``n(1+n)`` for phonons or ``f(1-f)`` for electrons.

    Zero-energy phonons get a vanishing factor.
    """
    ens = xp.asarray(ens)
    if prefix == "ph":
        out = xp.zeros_like(ens)
        mask = ens != 0.0
        n = 1.0 / xp.expm1(ens[mask] / (KB_EV * temperature))
        out[mask] = n * (1.0 + n)
        return out
    x = (ens - chempot) / (KB_EV * temperature)
    f = xp.asarray(expit(to_cpu(-x)))
    return f * (1.0 - f)


def symmetrize_tensor(tensor, crotations, bfield=None):
    """Average a 3x3 tensor over the point group.

    With a nonzero magnetic field only the operations leaving the axial vector B invariant,
    ``det(R) R B = B``, are used.

    Parameters
    ----------
    tensor : array-like
        Tensor(s), shape (..., 3, 3).
    crotations : array-like
        Cartesian rotations, shape (nsym, 3, 3).
    bfield : array-like, optional
        Magnetic field, shape (3,).

    Returns
    -------
    array-like
        Symmetrized tensor(s).

    """
    rots = np.asarray(crotations, dtype=np.float64)
    if bfield is not None and np.any(np.asarray(bfield) != 0.0):
        b = np.asarray(bfield, dtype=np.float64)
        images = np.linalg.det(rots)[:, None] * (rots @ b)
        rots = rots[np.all(np.isclose(images, b[None, :], atol=1e-8 * np.linalg.norm(b)), axis=1)]
    rots = xp.asarray(rots)
    return xp.einsum("sij,...jk,slk->...il", rots, xp.asarray(tensor), rots) / rots.shape[0]


class TransportIntegrator:
    """Compute transport tensors from response functions.

    Parameters
    ----------
    crystal : :py:class:`~dragBTE.base.Crystal`
        Crystal providing temperature, volume and point-group rotations.

    """

    def __init__(self, crystal):
        """Initialize the TransportIntegrator."""
        self.crystal = crystal

    def _integrand(self, species, field, response, nmesh):
        T = self.crystal.temperature
        A_hc, A_cc = transport_prefactors(species.prefix, field, T, self.crystal.volume, nmesh, species.spindeg)
        de = species.ens - species.chempot
        dist = distribution_factor(species.prefix, species.ens, species.chempot, T)
        # t[k, b, j, i] = v_j R_i
        vr = xp.einsum("kbj,kbi->kbji", species.vels, xp.asarray(response))
        return A_hc * (de * dist)[..., None, None] * vr, A_cc * dist[..., None, None] * vr

    def coefficients(self, species, field, response, bfield=None, symmetrize=True):
        """Integrate a response function over the Brillouin zone.

        Parameters
        ----------
        species : :py:class:`~dragBTE.base.Species`
            Phonon or electron data.
        field : {'T', 'E'}
            Field the response belongs to.
        response : array-like
            Response function, shape (nk, nb, 3).
        bfield : array-like, optional
            Magnetic field, restricts the symmetrization.
        symmetrize : bool, optional
            Symmetrize the tensors over the point group.

        Returns
        -------
        hc : array-like
            Heat-current coefficient per band, shape (nb, 3, 3).
        cc : array-like
            Charge-current coefficient per band, zero for phonons, shape (nb, 3, 3).

        """
        hc, cc = self._integrand(species, field, response, species.nwv_fbz)
        hc, cc = hc.sum(axis=0), cc.sum(axis=0)
        if symmetrize:
            hc = symmetrize_tensor(hc, self.crystal.crotations, bfield)
            cc = symmetrize_tensor(cc, self.crystal.crotations, bfield)
        return hc, cc

    def spectral_coefficients(self, species, field, response, en_grid, delta):
        """Energy-resolved transport coefficients.

        Parameters
        ----------
        species : :py:class:`~dragBTE.base.Species`
            Phonon or electron data.
        field : {'T', 'E'}
            Field the response belongs to.
        response : array-like
            Response function, shape (nk, nb, 3).
        en_grid : array-like
            Energy grid [eV], shape (ne,).
        delta : :py:class:`DeltaFunction`
            Delta-function strategy, its weights include the mesh normalization.

        Returns
        -------
        hc, cc : array-like
            Spectral coefficients per band, shape (nb, 3, 3, ne).

        """
        hc, cc = self._integrand(species, field, response, 1)
        nb = species.numbands
        ne = len(en_grid)
        hc_spec = xp.zeros((nb, 3, 3, ne), dtype=xp.float64)
        cc_spec = xp.zeros((nb, 3, 3, ne), dtype=xp.float64)
        for ie, en in enumerate(en_grid):
            w = delta.weights(species, float(en))
            hc_spec[..., ie] = xp.einsum("kb,kbji->bji", w, hc)
            cc_spec[..., ie] = xp.einsum("kb,kbji->bji", w, cc)
        return hc_spec, cc_spec


class DeltaFunction(ABC):
    """Strategy for the Brillouin-zone delta function ``delta(E - e_kb) / N``."""

    @abstractmethod
    def weights(self, species, en):
        """Return the weights of every active state at energy `en`, shape (nk, nb)."""


class GaussianDelta(DeltaFunction):
    """Gaussian-broadened delta function.

    Parameters
    ----------
    smearing : float
        Standard deviation [eV].

    """

    def __init__(self, smearing):
        """Initialize the GaussianDelta."""
        if smearing <= 0:
            raise ValueError(f"Smearing must be positive, got {smearing}")
        self.smearing = smearing

    def weights(self, species, en):
        """Gaussian weights normalized by the number of mesh points."""
        x = (en - species.ens) / self.smearing
        return xp.exp(-0.5 * x**2) / (np.sqrt(2 * np.pi) * self.smearing * species.nwv_fbz)


class TetrahedronDelta(DeltaFunction):
    """Linear tetrahedron delta function.

    Every mesh cell is split into six tetrahedra. Tetrahedra with a vertex outside the active points of the species
    are dropped. The weight of a tetrahedron is distributed to its vertices with the barycentric coordinates averaged
    over the iso-energy cross-section.

    Parameters
    ----------
    species : :py:class:`~dragBTE.base.Species`
        Species whose mesh defines the tetrahedra.

    """

    def __init__(self, species):
        """Build the tetrahedra of the active mesh points."""
        mesh = species.mesh
        vecs = demux_vector(species.indexlist, mesh)
        cell = np.empty((species.nk, 8), dtype=np.int64)
        for c in range(8):
            offset = np.array([c & 1, (c >> 1) & 1, (c >> 2) & 1])
            cell[:, c] = species.active_index(mux_vector((vecs + offset) % mesh, mesh), strict=False)
        tetra = cell[:, TETRA_CORNERS].reshape(-1, 4)
        self.tetra = tetra[np.all(tetra >= 0, axis=1)]
        self.nwv_fbz = species.nwv_fbz

    def weights(self, species, en):
        """Tetrahedron weights normalized by the number of mesh points."""
        ens = np.asarray(to_cpu(species.ens))
        out = np.zeros(ens.shape, dtype=np.float64)
        for ib in range(ens.shape[1]):
            etet = ens[self.tetra, ib]
            order = np.argsort(etet, axis=1)
            g, lam = tetra_dos_weights(np.take_along_axis(etet, order, axis=1), en)
            vertices = np.take_along_axis(self.tetra, order, axis=1)
            np.add.at(out[:, ib], vertices.ravel(), (g[:, None] * lam / (6 * self.nwv_fbz)).ravel())
        return xp.asarray(out)


def _edge_point(e, en, i, j):
    """Barycentric coordinates of the point at energy `en` on edge i-j."""
    t = (en - e[:, i]) / (e[:, j] - e[:, i])
    p = np.zeros(e.shape)
    p[:, i] = 1.0 - t
    p[:, j] = t
    return p


def _triangle_area(a, b, c):
    # vertices V0 = 0, V1 = x, V2 = y, V3 = z
    return 0.5 * np.linalg.norm(np.cross(b[:, 1:] - a[:, 1:], c[:, 1:] - a[:, 1:]), axis=1)


def tetra_dos_weights(e, en):
    """Density of states and vertex weights of tetrahedra at energy `en`.

    Parameters
    ----------
    e : numpy.ndarray
        Vertex energies sorted in ascending order, shape (nt, 4).
    en : float
        Energy [eV].

    Returns
    -------
    g : numpy.ndarray
        Normalized density of states of each tetrahedron, shape (nt,).
    lam : numpy.ndarray
        Vertex weights summing to one where `g` is nonzero, shape (nt, 4).

    """
    e = np.asarray(e, dtype=np.float64)
    g = np.zeros(e.shape[0])
    lam = np.zeros(e.shape)
    e1, e2, e3, e4 = e.T

    a = np.nonzero((e1 < en) & (en < e2))[0]
    if a.size:
        ea = e[a]
        g[a] = 3 * (en - e1[a]) ** 2 / ((e2[a] - e1[a]) * (e3[a] - e1[a]) * (e4[a] - e1[a]))
        lam[a] = (_edge_point(ea, en, 0, 1) + _edge_point(ea, en, 0, 2) + _edge_point(ea, en, 0, 3)) / 3

    b = np.nonzero((e2 <= en) & (en < e3))[0]
    if b.size:
        eb = e[b]
        d1, d2, d3, d4 = e1[b], e2[b], e3[b], e4[b]
        g[b] = (
            3 * (d2 - d1) + 6 * (en - d2) - 3 * (d3 - d1 + d4 - d2) * (en - d2) ** 2 / ((d3 - d2) * (d4 - d2))
        ) / ((d3 - d1) * (d4 - d1))
        p02, p03 = _edge_point(eb, en, 0, 2), _edge_point(eb, en, 0, 3)
        p13, p12 = _edge_point(eb, en, 1, 3), _edge_point(eb, en, 1, 2)
        a1 = _triangle_area(p02, p03, p13)
        a2 = _triangle_area(p02, p13, p12)
        c1 = (p02 + p03 + p13) / 3
        c2 = (p02 + p13 + p12) / 3
        tot = a1 + a2
        safe = np.where(tot > 0, tot, 1.0)
        lam[b] = np.where(
            (tot > 0)[:, None],
            (a1[:, None] * c1 + a2[:, None] * c2) / safe[:, None],
            (p02 + p03 + p13 + p12) / 4,
        )

    c = np.nonzero((e3 <= en) & (en < e4))[0]
    if c.size:
        ec = e[c]
        g[c] = 3 * (e4[c] - en) ** 2 / ((e4[c] - e1[c]) * (e4[c] - e2[c]) * (e4[c] - e3[c]))
        lam[c] = (_edge_point(ec, en, 0, 3) + _edge_point(ec, en, 1, 3) + _edge_point(ec, en, 2, 3)) / 3

    return g, lam
