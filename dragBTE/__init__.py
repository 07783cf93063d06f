"""dragBTE: iterative solvers for the coupled electron-phonon Boltzmann transport equation (BTE)."""

import os

__version__ = "0.1.0"


BACKEND = os.getenv("DRAGBTE_BACKEND", "cpu").lower()
if BACKEND not in ["cpu", "numpy", "gpu", "cupy"]:
    raise ValueError(f"Unknown array backend: {BACKEND}")


def to_cpu(a):
    """Move array-like `a` to CPU memory.

    Parameters
    ----------
    a : array-like
        Input array, possibly on GPU.

    Returns
    -------
    array-like
        Input array moved to CPU memory.

    """
    return a.get() if hasattr(a, "get") else a


if BACKEND in ["gpu", "cupy"]:  # pragma: no cover
    import cupy as xp

    HAVE_GPU = True

else:
    import numpy as xp

    HAVE_GPU = False

__all__ = [
    "xp",
    "to_cpu",
    "HAVE_GPU",
]
