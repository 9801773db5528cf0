# Sphinx configuration for the rydpair API documentation.
#
# Build with ``sphinx-build -b html docs docs/_build``.
import os
import sys

sys.path.insert(0, os.path.abspath(".."))

import rydpair  # noqa: E402

# -- Project information -----------------------------------------------------

project = "rydpair"
copyright = "2026, the rydpair developers"
author = "the rydpair developers"
release = rydpair.__version__
version = ".".join(release.split(".")[:2])

# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.doctest",
    "sphinx.ext.intersphinx",
    "sphinx.ext.mathjax",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "sphinx_autodoc_typehints",
    "sphinx_rtd_theme",
]

default_role = "py:obj"
exclude_patterns = ["_build", "Thumbs.db", ".DS_Store"]

autodoc_member_order = "bysource"
autodoc_default_options = {"members": True, "show-inheritance": True}
napoleon_google_docstring = True
napoleon_numpy_docstring = False

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "numpy": ("https://numpy.org/doc/stable", None),
    "scipy": ("https://docs.scipy.org/doc/scipy", None),
    "pint": ("https://pint.readthedocs.io/en/stable", None),
}

# -- Options for HTML output -------------------------------------------------

html_theme = "sphinx_rtd_theme"
