"""Utilities for NVTX annotations and wall-clock timing of solver stages."""

import time
from contextlib import contextmanager

import nvtx


def annotate(*args, **kwargs):
    """Thin wrapper around :func:`nvtx.annotate`.

    Can be used as a decorator or context manager. Ranges only show up when a profiler such as Nsight Systems is
    attached, otherwise the annotation is a no-op.
    """
    return nvtx.annotate(*args, **kwargs)


@contextmanager
def timer(name, verbose=False):
    """Time the enclosed block and print the elapsed wall time if `verbose`.

    The block is also wrapped in an NVTX range called `name`.

    Parameters
    ----------
    name : str
        Label of the timed section.
    verbose : bool, optional
        If ``True``, prints ``"<name>: <seconds> s"`` when the block exits.

    Yields
    ------
    dict
        Mutable record, ``"elapsed"`` is filled in when the block exits.

    """
    record = {"name": name, "elapsed": None}
    t0 = time.time()
    with nvtx.annotate(name):
        try:
            yield record
        finally:
            record["elapsed"] = time.time() - t0
            if verbose:
                print(f"{name}: {record['elapsed']:.2f} s")
