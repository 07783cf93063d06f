"""Sphinx configuration of the dragBTE documentation."""

import os
import sys
from pathlib import Path

# doc builds run on the NumPy backend
os.environ.setdefault("DRAGBTE_BACKEND", "cpu")
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dragBTE import __version__  # noqa: E402

project = "dragBTE"
author = "the dragBTE developers"
copyright = f"2025, {author}"
version = release = __version__

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.intersphinx",
    "sphinx.ext.mathjax",
    "sphinx.ext.napoleon",
    "sphinxarg.ext",
]
exclude_patterns = ["_build"]
html_theme = "sphinx_rtd_theme"

# API pages are generated from the module list in index.rst
autosummary_generate = True
autodoc_member_order = "bysource"
autodoc_default_options = {
    "members": True,
    "show-inheritance": True,
    "special-members": "__init__",
}

napoleon_numpy_docstring = True
napoleon_google_docstring = False
napoleon_use_rtype = False

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "numpy": ("https://numpy.org/doc/stable", None),
    "scipy": ("https://docs.scipy.org/doc/scipy", None),
    "h5py": ("https://docs.h5py.org/en/stable", None),
}
