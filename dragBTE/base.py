"""Base classes and methods for the dragBTE package."""

import numpy as np

from . import xp


class Crystal:
    """Container for crystal-wide properties shared by both particle species.

    Parameters
    ----------
    temperature : float
        Background temperature [K].
    volume : float
        Volume of the primitive cell [nm^3].
    reclattvecs : array-like
        Reciprocal lattice vectors as rows [1/nm], shape (3, 3).
    crotations : array-like
        Point-group rotations in Cartesian coordinates, shape (nsym, 3, 3).
    qrotations : array-like, optional
        The same rotations acting on integer reduced wavevectors, shape (nsym, 3, 3). Required to rotate phonon wave
        vectors living on the fine electron mesh. Defaults to identities.
    dim : int, optional
        Dimensionality of the system (2 or 3), used for trace averages. Default is 3.
    bound_length : float, optional
        Characteristic length for boundary scattering [nm].
    thinfilm_height : float, optional
        Height of the thin film [nm].
    thinfilm_normal : array-like, optional
        Cartesian unit normal of the thin film. Default is the z axis.
    specfac : float, optional
        Specularity of the thin-film surfaces, between 0 (diffuse) and 1 (specular). Default is 0.
    name : str, optional
        Name of the crystal.

    Attributes
    ----------
    nsym : int
        Number of point-group operations.

    """

    def __init__(
        self,
        temperature,
        volume,
        reclattvecs,
        crotations,
        qrotations=None,
        dim=3,
        bound_length=None,
        thinfilm_height=None,
        thinfilm_normal=(0.0, 0.0, 1.0),
        specfac=0.0,
        name=None,
    ):
        """Initialize the Crystal."""
        if dim not in [2, 3]:
            raise ValueError(f"Unsupported dimensionality: {dim}")
        if not 0.0 <= specfac <= 1.0:
            raise ValueError(f"Specularity must be in [0, 1], got {specfac}")
        self.temperature = float(temperature)
        self.volume = float(volume)
        self.reclattvecs = np.asarray(reclattvecs, dtype=np.float64)
        self.crotations = np.asarray(crotations, dtype=np.float64)
        self.nsym = self.crotations.shape[0]
        if qrotations is None:
            qrotations = np.tile(np.eye(3, dtype=np.int64), (self.nsym, 1, 1))
        self.qrotations = np.asarray(qrotations, dtype=np.int64)
        if self.qrotations.shape != self.crotations.shape:
            raise ValueError(f"Shape mismatch: qrotations {self.qrotations.shape} != {self.crotations.shape}")
        self.dim = dim
        self.bound_length = bound_length
        self.thinfilm_height = thinfilm_height
        normal = np.asarray(thinfilm_normal, dtype=np.float64)
        self.thinfilm_normal = normal / np.linalg.norm(normal)
        self.specfac = float(specfac)
        self.name = name

    def __repr__(self):
        """Return a string representation of the Crystal."""
        return f"{self.name}@{self.temperature}K with {self.nsym} symmetry operations"


class SelfScattering:
    """Elastic single-partner scattering processes (isotope or substitution disorder).

    Parameters
    ----------
    indexes : array-like
        Integer pairs ``(IBZ state, FBZ partner state)``, shape (n, 2).
    matel : array-like
        Transition probability of each pair [1/ps], shape (n,).

    """

    def __init__(self, indexes, matel):
        """Initialize SelfScattering."""
        self.indexes = np.asarray(indexes, dtype=np.int64).reshape(-1, 2)
        self.matel = np.asarray(matel, dtype=np.float64).reshape(-1)
        if self.indexes.shape[0] != self.matel.shape[0]:
            raise ValueError(f"Shape mismatch: {self.indexes.shape[0]} index pairs != {self.matel.shape[0]} elements")

    def __len__(self):
        """Return the number of processes."""
        return self.matel.shape[0]

    def select(self, istate):
        """Return ``(partners, matel)`` of all processes starting from IBZ state `istate`."""
        mask = self.indexes[:, 0] == istate
        return self.indexes[mask, 1], self.matel[mask]


class Species:
    """Band structure and symmetry data of one particle species on its wavevector mesh.

    Arrays that only steer control flow (maps, index lists) are kept in host memory, numerical data lives on the
    active array backend.

    Parameters
    ----------
    mesh : array-like
        Wavevector mesh, shape (3,).
    ens : array-like
        Energies on the active FBZ points [eV], shape (nk, nb).
    vels : array-like
        Group velocities on the active FBZ points [km/s], shape (nk, nb, 3).
    ens_irred : array-like
        Energies on the IBZ points [eV], shape (nibz, nb).
    vels_irred : array-like
        Group velocities on the IBZ points [km/s], shape (nibz, nb, 3).
    nequiv : array-like
        Number of FBZ images of each IBZ point, shape (nibz,).
    ibz2fbz_map : array-like
        ``(symmetry index, global FBZ index)`` of every image, shape (nibz, maxeq, 2). Entries beyond `nequiv` are
        ignored.
    equiv_map : array-like
        Global FBZ index of the image of every global FBZ point under each symmetry operation, shape (nsym, nfbz).
    symmetrizers : array-like
        Per-point symmetrizer matrices, shape (nk, 3, 3).
    indexlist : array-like, optional
        Sorted global FBZ indices of the active points, shape (nk,). Defaults to all points.
    indexlist_irred : array-like, optional
        Global FBZ index of every IBZ point, shape (nibz,).
    chempot : float, optional
        Chemical potential [eV].
    name : str, optional
        Name of the species, used in printouts.

    Attributes
    ----------
    nk : int
        Number of active FBZ points.
    nibz : int
        Number of IBZ points.
    numbands : int
        Number of bands or branches.
    nstates_irred : int
        Number of IBZ states, ``nibz * numbands``.

    """

    prefix = None
    spindeg = 1

    def __init__(
        self,
        mesh,
        ens,
        vels,
        ens_irred,
        vels_irred,
        nequiv,
        ibz2fbz_map,
        equiv_map,
        symmetrizers,
        indexlist=None,
        indexlist_irred=None,
        chempot=0.0,
        name=None,
    ):
        """Initialize the Species."""
        self.mesh = np.asarray(mesh, dtype=np.int64).reshape(3)
        self.ens = xp.asarray(ens, dtype=xp.float64)
        self.vels = xp.asarray(vels, dtype=xp.float64)
        self.ens_irred = xp.asarray(ens_irred, dtype=xp.float64)
        self.vels_irred = xp.asarray(vels_irred, dtype=xp.float64)
        self.nequiv = np.asarray(nequiv, dtype=np.int64)
        self.ibz2fbz_map = np.asarray(ibz2fbz_map, dtype=np.int64)
        self.equiv_map = np.asarray(equiv_map, dtype=np.int64)
        self.symmetrizers = xp.asarray(symmetrizers, dtype=xp.float64)
        self.nk, self.numbands = self.ens.shape
        self.nibz = self.ens_irred.shape[0]
        self.nstates_irred = self.nibz * self.numbands
        if indexlist is None:
            indexlist = np.arange(self.nk)
        self.indexlist = np.asarray(indexlist, dtype=np.int64)
        if indexlist_irred is None:
            indexlist_irred = self.ibz2fbz_map[:, 0, 1]
        self.indexlist_irred = np.asarray(indexlist_irred, dtype=np.int64)
        self.chempot = float(chempot)
        self.name = name or self.prefix

        if self.vels.shape != (self.nk, self.numbands, 3):
            raise ValueError(f"Shape mismatch: velocities {self.vels.shape} != {(self.nk, self.numbands, 3)}")
        if self.symmetrizers.shape != (self.nk, 3, 3):
            raise ValueError(f"Shape mismatch: symmetrizers {self.symmetrizers.shape} != {(self.nk, 3, 3)}")
        if self.indexlist.shape != (self.nk,):
            raise ValueError(f"Shape mismatch: indexlist {self.indexlist.shape} != {(self.nk,)}")
        if self.ens_irred.shape[1] != self.numbands or self.nequiv.shape != (self.nibz,):
            raise ValueError("Shape mismatch between IBZ energies and IBZ image counts.")
        if np.any(np.diff(self.indexlist) <= 0):
            raise ValueError("indexlist must be strictly increasing.")

    @property
    def nwv_fbz(self):
        """Number of points of the full mesh."""
        return int(np.prod(self.mesh))

    def __repr__(self):
        """Return a string representation of the Species."""
        return f"{self.name} on a {'x'.join(map(str, self.mesh))} mesh with {self.nk} points and {self.numbands} bands"

    def active_index(self, global_index, strict=True):
        """Map global FBZ indices to positions in :py:attr:`indexlist`.

        Parameters
        ----------
        global_index : int or array-like
            Global FBZ indices.
        strict : bool, optional
            If ``True``, raise when an index is not active. Otherwise inactive indices map to -1.

        Returns
        -------
        int or numpy.ndarray
            Active positions.

        Raises
        ------
        KeyError
            If `strict` and an index is not in :py:attr:`indexlist`.

        """
        g = np.asarray(global_index, dtype=np.int64)
        pos = np.searchsorted(self.indexlist, g)
        pos_c = np.minimum(pos, self.nk - 1)
        found = self.indexlist[pos_c] == g
        if strict and not np.all(found):
            missing = np.atleast_1d(g)[~np.atleast_1d(found)]
            raise KeyError(f"Wavevectors {missing.tolist()} are outside the {self.name} transport window.")
        out = np.where(found, pos_c, -1)
        return int(out) if out.ndim == 0 else out

    def in_window(self, ik_ibz, band):
        """Whether an IBZ state takes part in transport, always ``True`` unless overridden."""
        return True


class Phonon(Species):
    """Phonon :py:class:`Species` with vanishing chemical potential.

    Parameters
    ----------
    *args, **kwargs
        Passed on to :py:class:`Species`.
    isotope : SelfScattering, optional
        Isotope scattering processes.
    substitution : SelfScattering, optional
        Substitution disorder scattering processes.

    """

    prefix = "ph"

    def __init__(self, *args, isotope=None, substitution=None, **kwargs):
        """Initialize the Phonon species."""
        super().__init__(*args, **kwargs)
        self.isotope = isotope
        self.substitution = substitution


class Electron(Species):
    """Electron :py:class:`Species` restricted to an energy window around `enref`.

    Parameters
    ----------
    *args, **kwargs
        Passed on to :py:class:`Species`.
    spindeg : int, optional
        Spin degeneracy. Default is 2.
    enref : float, optional
        Centre of the transport window [eV]. Defaults to the chemical potential.
    fsthick : float, optional
        Half width of the transport window [eV]. Default is infinite.
    bandlist : array-like, optional
        Indices of the bands of the full band structure that are included, used when writing responses.

    """

    prefix = "el"

    def __init__(self, *args, spindeg=2, enref=None, fsthick=np.inf, bandlist=None, **kwargs):
        """Initialize the Electron species."""
        super().__init__(*args, **kwargs)
        self.spindeg = spindeg
        self.enref = self.chempot if enref is None else float(enref)
        self.fsthick = float(fsthick)
        self.bandlist = np.arange(self.numbands) if bandlist is None else np.asarray(bandlist, dtype=np.int64)

    def in_window(self, ik_ibz, band):
        """Whether the IBZ state lies inside the transport window."""
        return bool(abs(float(self.ens_irred[ik_ibz, band]) - self.enref) <= self.fsthick)


def mux_state(ik, band, numbands):
    """Combine a wavevector and a band index into a 0-based state index."""
    return ik * numbands + band


def demux_state(istate, numbands):
    """Split a 0-based state index into ``(wavevector, band)``."""
    return np.divmod(istate, numbands)


def mux_vector(vec, mesh):
    """Mux a 0-based integer index vector into a global mesh index, first axis fastest.

    Parameters
    ----------
    vec : array-like
        Index vectors, shape (..., 3).
    mesh : array-like
        Mesh, shape (3,).

    Returns
    -------
    int or numpy.ndarray
        Global indices.

    """
    vec = np.asarray(vec)
    return vec[..., 0] + mesh[0] * (vec[..., 1] + mesh[1] * vec[..., 2])


def demux_vector(index, mesh):
    """Inverse of :py:func:`mux_vector`, returns index vectors of shape (..., 3)."""
    index = np.asarray(index, dtype=np.int64)
    v0 = index % mesh[0]
    v1 = (index // mesh[0]) % mesh[1]
    v2 = index // (mesh[0] * mesh[1])
    return np.stack([v0, v1, v2], axis=-1)


def converged(oldval, newval, thr):
    """Check whether two successive values of a scalar agree.

    Parameters
    ----------
    oldval, newval : float
        Previous and current value.
    thr : float
        Relative threshold.

    Returns
    -------
    bool
        ``True`` if both values are identical or, for a nonzero `oldval`, their relative difference is below `thr`.

    """
    if newval == oldval:
        return True
    if oldval != 0.0:
        return abs(newval - oldval) / abs(oldval) < thr
    return False


class ConvergenceCriterion:
    """Convergence test over a set of named scalars.

    Parameters
    ----------
    conv_thr : float, optional
        Relative threshold applied to every scalar.
    max_iter : int, optional
        Iteration cap of the loop using the criterion.

    """

    def __init__(self, conv_thr=1e-4, max_iter=50):
        """Initialize the ConvergenceCriterion."""
        if max_iter < 1:
            raise ValueError(f"max_iter must be positive, got {max_iter}")
        self.conv_thr = conv_thr
        self.max_iter = max_iter

    def __call__(self, old, new):
        """Return ``True`` if every scalar of `new` converged against `old`.

        Parameters
        ----------
        old, new : dict
            Mappings from scalar name to value with identical keys.

        """
        if old.keys() != new.keys():
            raise ValueError(f"Tracked scalars differ: {sorted(old)} != {sorted(new)}")
        return all(converged(old[key], new[key], self.conv_thr) for key in new)


def symmetrize_response(response, symmetrizers):
    """Apply the per-point symmetrizers to a response function.

    Parameters
    ----------
    response : array-like
        Response function, shape (nk, nb, 3).
    symmetrizers : array-like
        Symmetrizer matrices, shape (nk, 3, 3).

    Returns
    -------
    array-like
        ``response[k, b] @ symmetrizers[k].T`` for every point and band.

    """
    return xp.einsum("kij,kbj->kbi", symmetrizers, response)


def trace_average(tensor, dim=3):
    """Return the trace of the band-summed tensor divided by `dim`.

    Parameters
    ----------
    tensor : array-like
        Per-band tensor, shape (nb, 3, 3), or a summed tensor of shape (3, 3).
    dim : int, optional
        Dimensionality of the system.

    """
    tensor = xp.asarray(tensor)
    if tensor.ndim == 3:
        tensor = tensor.sum(axis=0)
    return float(xp.trace(tensor)) / dim
