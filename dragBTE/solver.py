"""Convergence-driven orchestration of the dragless and dragful BTE regimes."""

import warnings
from argparse import Namespace

import numpy as np

from . import to_cpu, xp
from .base import ConvergenceCriterion, symmetrize_response, trace_average
from .drag import InterpolationStencil, correct_drag_scaling, kelvin_onsager_split, phonon_drag_term
from .fields import field_term
from .io import ResultContainer
from .iterative import iterate_bte_el, iterate_bte_ph, iterate_bte_ph_drag
from .parallel import SerialCommunicator
from .profiling import timer
from .rates import aggregate_rates, boundary_rates, thinfilm_rates
from .transport import GaussianDelta, TetrahedronDelta, TransportIntegrator

PH_CHANNELS = ["3ph", "4ph", "iso", "subs", "phe"]
EL_CHANNELS = ["eph", "echimp", "ee"]
PH_SCALARS = ["kappa", "alphabyT"]
EL_SCALARS = ["kappa0", "sigmaS", "sigma", "alphabyT"]
# response labels of (species, field)
RESPONSE_NAMES = {("ph", "T"): "F0", ("ph", "E"): "G0", ("el", "T"): "I0", ("el", "E"): "J0"}


class SolverResult:
    """Results of a :py:class:`BTESolver` run.

    Attributes
    ----------
    responses : dict
        Response functions keyed by ``'<label>_<name>'``, e.g. ``'drag_I0'``, as NumPy arrays.
    tensors : dict
        Final per-band transport tensors keyed by ``'<label>_<prefix>_<coefficient>'``.
    scalars : dict
        Final trace-averaged coefficients per regime.
    history : dict
        Trace-averaged coefficients of every iteration per regime. Entry 0 is the starting point.
    converged : dict
        Whether each iterated regime met the convergence criterion before the iteration cap.
    rates : dict
        Channel and total RTA rate tables keyed by ``(prefix, channel)``.
    lambdas : list of float
        Drag scaling factors of every inner electron iteration.
    ko_dev : list of float
        Kelvin-Onsager deviation in percent after every outer dragful iteration.
    spectral : dict
        Spectral coefficients filled in by :py:meth:`BTESolver.post_process`.

    """

    def __init__(self):
        """Initialize an empty SolverResult."""
        self.responses = {}
        self.tensors = {}
        self.scalars = {}
        self.history = {}
        self.converged = {}
        self.rates = {}
        self.lambdas = []
        self.ko_dev = []
        self.spectral = {}

    def __repr__(self):
        """Return a string representation of the SolverResult."""
        return f"SolverResult(regimes={sorted(self.history)}, converged={self.converged})"


class BTESolver:
    r"""Solver for the coupled electron-phonon BTE at one temperature.

    The run follows the regimes

    1. phonon RTA (unless `only_el`) and electron RTA (unless `only_ph`),
    2. dragless phonon iteration (if `only_ph` or `drag`) and dragless electron iteration (if `only_el` or `drag`),
    3. dragful nested iteration (if `drag`): every outer step sweeps the phonon BTE once with the current electron
       responses and recomputes the drag terms, then the electron BTE is iterated to convergence.

    Every iterated regime restarts from the field terms, so the regimes are independent of each other. In all
    electron iterations the temperature-gradient response is tied to the electric-field response by the
    Kelvin-Onsager relation: dragless runs replace it by its diffusion part, dragful runs rescale its drag part with
    :py:func:`~dragBTE.drag.correct_drag_scaling`.

    Parameters
    ----------
    crystal : :py:class:`~dragBTE.base.Crystal`
        Crystal data.
    phonon : :py:class:`~dragBTE.base.Phonon`
        Phonon data.
    electron : :py:class:`~dragBTE.base.Electron`, optional
        Electron data, required unless `only_ph`.
    ph_rates : dict, optional
        Phonon channel rate tables, keys from ``'3ph'``, ``'4ph'``, ``'iso'``, ``'subs'``, ``'phe'``.
    el_rates : dict, optional
        Electron channel rate tables, keys from ``'eph'``, ``'echimp'``, ``'ee'``.
    ph_store : :py:class:`~dragBTE.io.TransitionStore`, optional
        Phonon transition records (``Wp``, ``Wm``, ``Y``). Required if `only_ph` or `drag`.
    el_store : :py:class:`~dragBTE.io.TransitionStore`, optional
        Electron transition records (``Xplus``, ``Xminus``, ``Xchimp``, ``Xee``). Required if `only_el` or `drag`.
    drag : bool, optional
        Solve the coupled BTEs.
    only_ph, only_el : bool, optional
        Restrict the run to one species.
    phe : bool, optional
        Include phonon-electron scattering in the phonon rates.
    elchimp : bool, optional
        Include charged-impurity scattering of electrons.
    elel : bool, optional
        Include electron-electron scattering.
    phbound, elbound : bool, optional
        Add boundary scattering with the crystal's boundary length.
    phthinfilm : bool, optional
        Add thin-film scattering of phonons.
    phthinfilm_ballistic : bool, optional
        Use the ballistic thin-film rate for phonons.
    elthinfilm : bool, optional
        Add thin-film scattering of electrons.
    elthinfilm_ballistic : bool, optional
        Use the ballistic thin-film rate for electrons.
    bfield : array-like, optional
        Magnetic field [T], shape (3,).
    max_iter : int, optional
        Iteration cap of every loop.
    conv_thr : float, optional
        Relative convergence threshold.
    comm : :py:class:`~dragBTE.parallel.Communicator`, optional
        Communicator, serial if ``None``.
    output_dir : str, optional
        If given, results are written below this directory by the root worker.
    compression : {'bitshuffle', None}, optional
        Compression of stored response functions.
    command_line_args : argparse.Namespace, optional
        Optional namespace of parsed command-line arguments to be added to the results file.
    print_progress : bool, optional
        If ``True``, the root worker prints convergence tables and timings.

    """

    _result = None

    def __init__(
        self,
        crystal,
        phonon,
        electron=None,
        ph_rates=None,
        el_rates=None,
        ph_store=None,
        el_store=None,
        drag=False,
        only_ph=False,
        only_el=False,
        phe=False,
        elchimp=False,
        elel=False,
        phbound=False,
        elbound=False,
        phthinfilm=False,
        phthinfilm_ballistic=False,
        elthinfilm=False,
        elthinfilm_ballistic=False,
        bfield=None,
        max_iter=50,
        conv_thr=1e-4,
        comm=None,
        output_dir=None,
        compression="bitshuffle",
        command_line_args=Namespace(),
        print_progress=False,
    ):
        """Initialize BTESolver."""
        if only_ph and only_el:
            raise ValueError("only_ph and only_el are mutually exclusive.")
        if drag and (only_ph or only_el):
            raise ValueError("The drag calculation needs both species.")
        if electron is None and not only_ph:
            raise ValueError("Electron data is required unless only_ph is set.")
        if ph_store is None and (only_ph or drag):
            raise ValueError("Phonon transition records are required for the iterated phonon BTE.")
        if el_store is None and (only_el or drag):
            raise ValueError("Electron transition records are required for the iterated electron BTE.")
        self.crystal = crystal
        self.ph = phonon
        self.el = electron
        self.ph_store = ph_store
        self.el_store = el_store
        self.drag = drag
        self.only_ph = only_ph
        self.only_el = only_el
        self.phe = phe
        self.elchimp = elchimp
        self.elel = elel
        self.phbound = phbound
        self.elbound = elbound
        self.phthinfilm = phthinfilm
        self.phthinfilm_ballistic = phthinfilm_ballistic
        self.elthinfilm = elthinfilm
        self.elthinfilm_ballistic = elthinfilm_ballistic
        self.bfield = None if bfield is None else np.asarray(bfield, dtype=np.float64)
        self.criterion = ConvergenceCriterion(conv_thr=conv_thr, max_iter=max_iter)
        self.comm = SerialCommunicator() if comm is None else comm
        self.transport = TransportIntegrator(crystal)
        self.output_dir = output_dir
        self.compression = compression
        self.command_line_args = command_line_args
        self.print_progress = print_progress
        self.verbose = print_progress and self.comm.is_root
        self._container = None

        self.ph_channels = self._check_channels(ph_rates, PH_CHANNELS, "phonon")
        self.el_channels = self._check_channels(el_rates, EL_CHANNELS, "electron")

    @staticmethod
    def _check_channels(rates, allowed, name):
        rates = dict(rates or {})
        for channel in rates:
            if channel not in allowed:
                raise ValueError(f"Unknown {name} scattering channel: {channel}")
        return rates

    @property
    def result(self):
        """Return the :py:class:`SolverResult` of the last run."""
        if self._result is None:
            raise RuntimeError("Solver has not been run yet. Please run the solver first.")
        return self._result

    def _print(self, *args):
        if self.verbose:
            print(*args)

    def _aggregate_ph_rates(self, result):
        bulk = dict(self.ph_channels)
        if not self.phe:
            bulk.pop("phe", None)
        if self.phbound:
            bulk["bound"] = boundary_rates(self.ph.vels_irred, self.crystal.bound_length)
        if not bulk:
            raise ValueError("No phonon scattering channel given.")
        surface = [self._thinfilm(result, self.ph, self.phthinfilm_ballistic)] if self.phthinfilm else []
        total = aggregate_rates(list(bulk.values()), surface)
        for channel, table in bulk.items():
            result.rates[("ph", channel)] = xp.asarray(table)
        result.rates[("ph", "total")] = total
        return total

    def _thinfilm(self, result, species, ballistic):
        crys = self.crystal

        def thinfilm(partial):
            rates = thinfilm_rates(
                species.vels_irred,
                partial,
                crys.thinfilm_height,
                crys.thinfilm_normal,
                specularity=crys.specfac,
                ballistic=ballistic,
            )
            result.rates[(species.prefix, "thinfilm")] = rates
            return rates

        return thinfilm

    def _aggregate_el_rates(self, result):
        bulk = dict(self.el_channels)
        if not self.elchimp:
            bulk.pop("echimp", None)
        if not self.elel:
            bulk.pop("ee", None)
        if self.elbound:
            bulk["bound"] = boundary_rates(self.el.vels_irred, self.crystal.bound_length)
        if not bulk:
            raise ValueError("No electron scattering channel given.")
        surface = [self._thinfilm(result, self.el, self.elthinfilm_ballistic)] if self.elthinfilm else []
        total = aggregate_rates(list(bulk.values()), surface)
        for channel, table in bulk.items():
            result.rates[("el", channel)] = xp.asarray(table)
        result.rates[("el", "total")] = total
        return total

    def _field_terms(self, species, rates):
        T = self.crystal.temperature
        terms = {}
        for field in ["T", "E"]:
            term = field_term(species, field, rates, T, comm=self.comm)
            terms[field] = symmetrize_response(term, species.symmetrizers)
        return terms

    def _ph_tensors(self):
        T = self.crystal.temperature
        kappa, _ = self.transport.coefficients(self.ph, "T", self.ph_response["T"])
        alpha, _ = self.transport.coefficients(self.ph, "E", self.ph_response["E"])
        return {"kappa": kappa, "alphabyT": alpha / T}

    def _el_tensors(self):
        T = self.crystal.temperature
        kappa0, sigmaS = self.transport.coefficients(self.el, "T", self.el_response["T"], bfield=self.bfield)
        alpha, sigma = self.transport.coefficients(self.el, "E", self.el_response["E"], bfield=self.bfield)
        return {"kappa0": kappa0, "sigmaS": sigmaS, "sigma": sigma, "alphabyT": alpha / T}

    def _scalars(self, tensors):
        return {key: trace_average(value, self.crystal.dim) for key, value in tensors.items()}

    def _store_response(self, result, label, prefix, field, tensor):
        name = f"{label}_{RESPONSE_NAMES[(prefix, field)]}"
        result.responses[name] = np.asarray(to_cpu(tensor))
        if self._container is not None:
            bandlist = self.el.bandlist if prefix == "el" else None
            self._container.write_response(name, tensor, bandlist=bandlist)

    def _store_tensors(self, result, label, prefix, iteration, tensors):
        for key, tensor in tensors.items():
            name = f"{label}_{prefix}_{key}"
            result.tensors[name] = np.asarray(to_cpu(tensor))
            if self._container is not None:
                self._container.append_tensor(name, iteration, tensor)

    def _finish_regime(self, result, regime, converged, scalars):
        result.converged[regime] = converged
        result.scalars[regime] = scalars
        if not converged:
            warnings.warn(
                f"{regime} did not converge within {self.criterion.max_iter} iterations.", RuntimeWarning, stacklevel=3
            )

    def run(self):
        """Run all requested regimes and return the :py:class:`SolverResult`."""
        result = SolverResult()
        if self.output_dir is not None and self.comm.is_root:
            self._container = ResultContainer(self.output_dir, self.crystal.temperature, compression=self.compression)
            self._container.write_metadata(self.command_line_args)
        try:
            self._print(f"Transport at T = {self.crystal.temperature} K (trace-averaged coefficients):")
            if not self.only_el:
                self._run_ph_rta(result)
            if not self.only_ph:
                self._run_el_rta(result)
            if self.only_ph or self.drag:
                self._run_dragless_ph(result)
            if self.only_el or self.drag:
                self._run_dragless_el(result)
            if self.drag:
                self._run_dragful(result)
            if self._container is not None:
                for (prefix, channel), table in result.rates.items():
                    self._container.write_rates(prefix, channel, table)
                self._container.write_metadata(converged=result.converged)
        finally:
            if self._container is not None:
                self._container.close()
                self._container = None
        self.comm.barrier()
        self._result = result
        return result

    def _run_ph_rta(self, result):
        with timer("Phonon RTA", self.verbose):
            self.ph_rates = self._aggregate_ph_rates(result)
            self.ph_field = self._field_terms(self.ph, self.ph_rates)
            self.ph_response = {field: term.copy() for field, term in self.ph_field.items()}
            tensors = self._ph_tensors()
            scalars = self._scalars(tensors)
            result.history["RTA_ph"] = [scalars]
            result.scalars["RTA_ph"] = scalars
            self._store_tensors(result, "nodrag", "ph", 0, tensors)
            self._store_response(result, "RTA", "ph", "T", self.ph_response["T"])
            self._store_response(result, "RTA", "ph", "E", self.ph_response["E"])
            self._print("Phonon RTA solution:")
            self._print("iter    k_ph[W/m/K]")
            self._print(f"{0:3d}    {scalars['kappa']:16.8e}")

    def _run_el_rta(self, result):
        with timer("Electron RTA", self.verbose):
            self.el_rates = self._aggregate_el_rates(result)
            self.el_field = self._field_terms(self.el, self.el_rates)
            self.el_response = {field: term.copy() for field, term in self.el_field.items()}
            tensors = self._el_tensors()
            scalars = self._scalars(tensors)
            result.history["RTA_el"] = [scalars]
            result.scalars["RTA_el"] = scalars
            self._store_tensors(result, "nodrag", "el", 0, tensors)
            self._store_response(result, "RTA", "el", "T", self.el_response["T"])
            self._store_response(result, "RTA", "el", "E", self.el_response["E"])
            self._print("Electron RTA solution:")
            self._print(self._el_header())
            self._print(self._el_row(0, scalars))

    @staticmethod
    def _el_header():
        return "iter    k0_el[W/m/K]        sigmaS[A/m/K]         sigma[1/Ohm/m]      alpha_el/T[A/m/K]"

    @staticmethod
    def _el_row(it, s):
        return f"{it:3d}  {s['kappa0']:16.8e}  {s['sigmaS']:16.8e}  {s['sigma']:16.8e}  {s['alphabyT']:16.8e}"

    def _run_dragless_ph(self, result):
        self._print("Dragless phonon transport:")
        self._print("iter    k_ph[W/m/K]")
        with timer("Iterative dragless ph BTE", self.verbose):
            self.ph_response = {field: term.copy() for field, term in self.ph_field.items()}
            old = result.scalars["RTA_ph"]
            history = [old]
            converged = False
            for it in range(1, self.criterion.max_iter + 1):
                self.ph_response["T"] = iterate_bte_ph(
                    self.ph, self.ph_rates, self.ph_field["T"], self.ph_response["T"], self.ph_store, self.comm
                )
                tensors = self._ph_tensors()
                scalars = self._scalars(tensors)
                history.append(scalars)
                self._store_tensors(result, "nodrag", "ph", it, tensors)
                self._print(f"{it:3d}    {scalars['kappa']:16.8e}")
                if self.criterion(old, scalars):
                    converged = True
                    break
                old = scalars
            result.history["nodrag_ph"] = history
            self._store_response(result, "nodrag", "ph", "T", self.ph_response["T"])
            self._finish_regime(result, "nodrag_ph", converged, scalars)

    def _run_dragless_el(self, result):
        self._print("Dragless electron transport:")
        self._print(self._el_header())
        T = self.crystal.temperature
        with timer("Iterative dragless e BTE", self.verbose):
            self.el_response = {field: term.copy() for field, term in self.el_field.items()}
            old = result.scalars["RTA_el"]
            history = [old]
            converged = False
            for it in range(1, self.criterion.max_iter + 1):
                self.el_response["E"] = iterate_bte_el(
                    self.el,
                    self.crystal,
                    self.el_rates,
                    self.el_field["E"],
                    self.el_response["E"],
                    self.el_store,
                    self.comm,
                    elchimp=self.elchimp,
                    elel=self.elel,
                    bfield=self.bfield,
                )
                # Kelvin-Onsager: without drag the T response is pure diffusion
                self.el_response["T"], _ = kelvin_onsager_split(
                    self.el, T, self.el_response["E"], self.el_response["T"]
                )
                tensors = self._el_tensors()
                scalars = self._scalars(tensors)
                history.append(scalars)
                self._store_tensors(result, "nodrag", "el", it, tensors)
                self._print(self._el_row(it, scalars))
                if self.criterion(old, scalars):
                    converged = True
                    break
                old = scalars
            result.history["nodrag_el"] = history
            self._store_response(result, "nodrag", "el", "T", self.el_response["T"])
            self._store_response(result, "nodrag", "el", "E", self.el_response["E"])
            self._finish_regime(result, "nodrag_el", converged, scalars)

    def _sigma_s_scalar(self, response_T):
        _, sigmaS = self.transport.coefficients(self.el, "T", response_T)
        return trace_average(sigmaS, self.crystal.dim)

    def _run_dragful(self, result):
        T = self.crystal.temperature
        ph, el = self.ph, self.el
        stencil = InterpolationStencil(ph.mesh, el.mesh)
        self.ph_response = {field: term.copy() for field, term in self.ph_field.items()}
        self.el_response = {field: term.copy() for field, term in self.el_field.items()}

        ph_old = result.scalars["RTA_ph"]
        el_old = result.scalars["RTA_el"]
        self._store_tensors(result, "drag", "ph", 0, self._ph_tensors())
        self._store_tensors(result, "drag", "el", 0, self._el_tensors())
        ph_history, el_history = [ph_old], [el_old]
        ph_converged, el_converged = False, True

        self._print("Coupled electron-phonon transport:")
        self._print(
            "iter     k0_el[W/m/K]         sigmaS[A/m/K]         k_ph[W/m/K]         sigma[1/Ohm/m]"
            "         alpha_el/T[A/m/K]         alpha_ph/T[A/m/K]         KO dev.[%]"
        )
        with timer("Coupled e-ph BTEs", self.verbose):
            for it_ph in range(1, self.criterion.max_iter + 1):
                for field in ["T", "E"]:
                    self.ph_response[field] = iterate_bte_ph_drag(
                        ph,
                        el,
                        self.ph_rates,
                        self.ph_field[field],
                        self.ph_response[field],
                        self.el_response[field],
                        self.ph_store,
                        self.comm,
                    )
                ph_tensors = self._ph_tensors()
                ph_scalars = self._scalars(ph_tensors)

                drag_terms = {
                    field: phonon_drag_term(
                        el, ph, self.crystal, stencil, self.el_rates, self.ph_response[field], self.el_store, self.comm
                    )
                    for field in ["T", "E"]
                }

                inner_converged = False
                for _ in range(self.criterion.max_iter):
                    for field in ["E", "T"]:
                        self.el_response[field] = iterate_bte_el(
                            el,
                            self.crystal,
                            self.el_rates,
                            self.el_field[field],
                            self.el_response[field],
                            self.el_store,
                            self.comm,
                            drag_term=drag_terms[field],
                            elchimp=self.elchimp,
                            elel=self.elel,
                            bfield=self.bfield,
                        )
                    I_diff, I_drag = kelvin_onsager_split(el, T, self.el_response["E"], self.el_response["T"])
                    lam = correct_drag_scaling(
                        lambda x, I_drag=I_drag: self._sigma_s_scalar(x * I_drag), ph_scalars["alphabyT"]
                    )
                    result.lambdas.append(lam)
                    self.el_response["T"] = I_diff + lam * I_drag

                    el_tensors = self._el_tensors()
                    el_scalars = self._scalars(el_tensors)
                    if self.criterion(el_old, el_scalars):
                        inner_converged = True
                        break
                    el_old = el_scalars
                el_converged = el_converged and inner_converged
                el_history.append(el_scalars)
                ph_history.append(ph_scalars)

                if it_ph == 1:
                    self._store_response(result, "partdcpl", "el", "T", self.el_response["T"])
                    self._store_response(result, "partdcpl", "el", "E", self.el_response["E"])

                tot = el_scalars["alphabyT"] + ph_scalars["alphabyT"]
                ko_dev = 100.0 * abs((el_scalars["sigmaS"] - tot) / tot) if tot != 0.0 else float("nan")
                result.ko_dev.append(ko_dev)
                self._print(
                    f"{it_ph:3d}     {el_scalars['kappa0']:16.8e}      {el_scalars['sigmaS']:16.8e}     "
                    f"{ph_scalars['kappa']:16.8e}    {el_scalars['sigma']:16.8e}        "
                    f"{el_scalars['alphabyT']:16.8e}         {ph_scalars['alphabyT']:16.8e}           {ko_dev:6.3f}"
                )
                self._store_tensors(result, "drag", "ph", it_ph, ph_tensors)
                self._store_tensors(result, "drag", "el", it_ph, el_tensors)

                if self.criterion(ph_old, ph_scalars):
                    ph_converged = True
                    break
                ph_old = ph_scalars

        result.history["drag_ph"] = ph_history
        result.history["drag_el"] = el_history
        for prefix, responses in [("ph", self.ph_response), ("el", self.el_response)]:
            for field in ["T", "E"]:
                self._store_response(result, "drag", prefix, field, responses[field])
        self._finish_regime(result, "drag_el", el_converged, el_scalars)
        self._finish_regime(result, "drag_ph", ph_converged, ph_scalars)

    def post_process(self, ph_en_grid=None, el_en_grid=None, delta="gaussian", smearing=1e-3):
        """Compute spectral transport coefficients of every stored response.

        Parameters
        ----------
        ph_en_grid, el_en_grid : array-like, optional
            Energy grids [eV]. Species without a grid are skipped.
        delta : {'gaussian', 'tetra'} or :py:class:`~dragBTE.transport.DeltaFunction`, optional
            Delta-function strategy.
        smearing : float, optional
            Gaussian smearing [eV].

        Returns
        -------
        dict
            Spectral ``(hc, cc)`` tensors keyed by ``'<label>_<name>'`` of the response, each of shape
            (nb, 3, 3, ne).

        """
        result = self.result
        grids = {"ph": (self.ph, ph_en_grid), "el": (self.el, el_en_grid)}
        deltas = {}
        for label, response in result.responses.items():
            name = label.rsplit("_", 1)[1]
            prefix, field = next(key for key, value in RESPONSE_NAMES.items() if value == name)
            species, grid = grids[prefix]
            if grid is None or species is None:
                continue
            if prefix not in deltas:
                deltas[prefix] = self._make_delta(delta, species, smearing)
            hc, cc = self.transport.spectral_coefficients(species, field, response, grid, deltas[prefix])
            result.spectral[label] = (np.asarray(to_cpu(hc)), np.asarray(to_cpu(cc)))

        if self.output_dir is not None and self.comm.is_root:
            with ResultContainer(self.output_dir, self.crystal.temperature, compression=self.compression) as rc:
                for label, (hc, cc) in result.spectral.items():
                    prefix = "ph" if label[-2:] in ["F0", "G0"] else "el"
                    rc.write_spectral(label, grids[prefix][1], hc, cc)
        return result.spectral

    @staticmethod
    def _make_delta(delta, species, smearing):
        if delta == "gaussian":
            return GaussianDelta(smearing)
        if delta == "tetra":
            return TetrahedronDelta(species)
        if hasattr(delta, "weights"):
            return delta
        raise ValueError(f"Unknown delta function: {delta}")


def solve(crystal, phonon, electron=None, **kwargs):
    """Construct a :py:class:`BTESolver`, run it and return the :py:class:`SolverResult`.

    Parameters
    ----------
    crystal : :py:class:`~dragBTE.base.Crystal`
        Crystal data.
    phonon : :py:class:`~dragBTE.base.Phonon`
        Phonon data.
    electron : :py:class:`~dragBTE.base.Electron`, optional
        Electron data.
    **kwargs
        Options of :py:class:`BTESolver`.

    """
    return BTESolver(crystal, phonon, electron, **kwargs).run()
