# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

# -- Project information -----------------------------------------------------

project = 'fractabubble'
copyright = '2025, fractabubble authors'
author = 'fractabubble authors'
release = '0.1.0'

import os
import sys
sys.path.insert(0, os.path.abspath(".."))

# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",           # pull docstrings from code
    "sphinx.ext.autosummary",       # auto-generate API pages
    "sphinx_autodoc_typehints",     # use type hints in docs
    "myst_parser",                  # allow Markdown
    "sphinx.ext.napoleon",          # Google/NumPy docstring syntax
]
autosummary_generate = True

source_suffix = {
    ".rst": "restructuredtext",
    ".md": "markdown",
}

exclude_patterns = ['_build', 'Thumbs.db', '.DS_Store']

# -- Options for HTML output -------------------------------------------------

html_theme = "sphinx_rtd_theme"
