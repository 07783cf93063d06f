"""Command-line interface for the coupled electron-phonon BTE solver."""

from argparse import ArgumentParser

import numpy as np


def build_parser():
    """Return the argument parser of the command line interface."""
    parser = ArgumentParser(description="Solve the coupled electron-phonon Boltzmann transport equations.")
    parser.add_argument("input", type=str, help="HDF5 system file written by dragBTE.io.save_system")
    parser.add_argument("output", type=str, help="output directory for the HDF5 result file(s)")

    parser.add_argument(
        "-t",
        "--temperature_range",
        type=float,
        nargs="+",
        default=[300],
        help="temperature in Kelvin, a single value or (start, stop, num)",
    )
    parser.add_argument("--ph_transitions", type=str, default=None, help="HDF5 file with Wp, Wm and Y records")
    parser.add_argument("--el_transitions", type=str, default=None, help="HDF5 file with Xplus, Xminus, ... records")
    parser.add_argument(
        "--transitions_by_temperature",
        action="store_true",
        help="read transition records from the temperature groups of the transition files",
    )

    regime = parser.add_mutually_exclusive_group()
    regime.add_argument("--drag", action="store_true", help="solve the coupled BTEs")
    regime.add_argument("--only_ph", action="store_true", help="solve the phonon BTE only")
    regime.add_argument("--only_el", action="store_true", help="solve the electron BTE only")

    parser.add_argument("--phe", action="store_true", help="include phonon-electron scattering")
    parser.add_argument("--elchimp", action="store_true", help="include charged-impurity scattering")
    parser.add_argument("--elel", action="store_true", help="include electron-electron scattering")
    parser.add_argument("--phbound", action="store_true", help="include phonon boundary scattering")
    parser.add_argument("--elbound", action="store_true", help="include electron boundary scattering")
    parser.add_argument("--phthinfilm", action="store_true", help="include phonon thin-film scattering")
    parser.add_argument("--phthinfilm_ballistic", action="store_true", help="use the ballistic phonon thin-film rate")
    parser.add_argument("--elthinfilm", action="store_true", help="include electron thin-film scattering")
    parser.add_argument("--elthinfilm_ballistic", action="store_true", help="use the ballistic electron thin-film rate")
    parser.add_argument(
        "-B", "--bfield", type=float, nargs=3, default=None, help="magnetic field in Tesla (Bx, By, Bz)"
    )

    parser.add_argument("-m", "--max_iter", type=int, default=50, help="maximum number of iterations per loop")
    parser.add_argument("-c", "--conv_thr", type=float, default=1e-4, help="relative convergence threshold")
    parser.add_argument(
        "--compression",
        type=str,
        choices=["bitshuffle", "none"],
        default="bitshuffle",
        help="compression of stored response functions",
    )
    parser.add_argument("--mpi", action="store_true", help="distribute the work with mpi4py")

    parser.add_argument(
        "--spectral",
        type=float,
        nargs=3,
        default=None,
        metavar=("EMIN", "EMAX", "NUM"),
        help="compute spectral coefficients on this energy grid in eV (electrons relative to the chemical potential)",
    )
    parser.add_argument(
        "--delta", type=str, choices=["gaussian", "tetra"], default="gaussian", help="delta-function method"
    )
    parser.add_argument("--smearing", type=float, default=1e-3, help="Gaussian smearing in eV")

    parser.add_argument("-v", "--verbose", action="store_true", help="print convergence tables and timings")
    parser.add_argument("--dry-run", action="store_true", help="load and validate the inputs without solving")
    return parser


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    a = build_parser().parse_args(argv)

    if len(a.temperature_range) == 1:
        a.temperature_range = np.array([float(a.temperature_range[0])])
    elif len(a.temperature_range) == 3:
        a.temperature_range[-1] = int(a.temperature_range[-1])
        a.temperature_range = np.linspace(*a.temperature_range)
    else:
        raise ValueError("temperature_range must be a single value or 3 values (start, stop, num)")

    if a.compression == "none":
        a.compression = None

    return a


def _open_store(path, temperature, by_temperature):
    from .io import HDF5TransitionStore

    if path is None:
        return None
    return HDF5TransitionStore(path, temperature if by_temperature else None)


def main(argv=None):
    """Run the solver for every requested temperature."""
    from tqdm import tqdm

    from .io import load_system
    from .parallel import get_communicator
    from .solver import EL_CHANNELS, PH_CHANNELS, BTESolver

    args = parse_arguments(argv)
    comm = get_communicator("mpi" if args.mpi else "serial")
    temperature_progress = args.temperature_range.shape[0] > 1

    try:
        for temperature in tqdm(
            args.temperature_range, desc="T", disable=not (temperature_progress and comm.is_root)
        ):
            # one reader, every worker gets the same system
            system = load_system(args.input, temperature) if comm.is_root else None
            crystal, phonon, electron, rates = comm.bcast(system)
            ph_rates = {ch: table for (prefix, ch), table in rates.items() if prefix == "ph" and ch in PH_CHANNELS}
            el_rates = {ch: table for (prefix, ch), table in rates.items() if prefix == "el" and ch in EL_CHANNELS}
            ph_store = _open_store(args.ph_transitions, temperature, args.transitions_by_temperature)
            el_store = _open_store(args.el_transitions, temperature, args.transitions_by_temperature)
            try:
                solver = BTESolver(
                    crystal,
                    phonon,
                    electron,
                    ph_rates=ph_rates,
                    el_rates=el_rates,
                    ph_store=ph_store,
                    el_store=el_store,
                    drag=args.drag,
                    only_ph=args.only_ph,
                    only_el=args.only_el,
                    phe=args.phe,
                    elchimp=args.elchimp,
                    elel=args.elel,
                    phbound=args.phbound,
                    elbound=args.elbound,
                    phthinfilm=args.phthinfilm,
                    phthinfilm_ballistic=args.phthinfilm_ballistic,
                    elthinfilm=args.elthinfilm,
                    elthinfilm_ballistic=args.elthinfilm_ballistic,
                    bfield=args.bfield,
                    max_iter=args.max_iter,
                    conv_thr=args.conv_thr,
                    comm=comm,
                    output_dir=args.output,
                    compression=args.compression,
                    command_line_args=args,
                    print_progress=args.verbose,
                )
                if args.dry_run:
                    if comm.is_root:
                        print(f"{crystal!r}: {phonon!r}; {electron!r}")
                    continue
                solver.run()
                if args.spectral is not None:
                    emin, emax, num = args.spectral
                    grid = np.linspace(emin, emax, int(num))
                    solver.post_process(
                        ph_en_grid=None if args.only_el else grid,
                        el_en_grid=None if args.only_ph else grid + electron.chempot,
                        delta=args.delta,
                        smearing=args.smearing,
                    )
            finally:
                for store in [ph_store, el_store]:
                    if store is not None:
                        store.close()
    except Exception:
        if comm.size > 1:
            comm.abort(1)
        raise


if __name__ == "__main__":
    main()
