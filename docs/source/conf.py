# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

# add project root to sys.path for autodoc
import os
import sys

sys.path.insert(0, os.path.abspath('../..'))

from BudgetTracker import __version__

# -- Project information -----------------------------------------------------

project = 'BudgetTracker'
copyright = '2026, BudgetTracker contributors'
author = 'BudgetTracker contributors'
release = __version__

# -- General configuration ---------------------------------------------------

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.coverage',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
    'sphinx.ext.autosectionlabel',
]

napoleon_google_docstring = True
napoleon_use_param = False
napoleon_use_ivar = False

pygments_style = 'vs'
pygments_dark_style = 'stata-dark'

exclude_patterns = []

autodoc_default_options = {
    'member-order': 'groupwise',
    'show-inheritance': True,
}
autodoc_preserve_defaults = True

# -- Options for HTML output -------------------------------------------------

html_theme = 'furo'
html_theme_options = {
    'light_css_variables': {
        'color-brand-primary': 'rgba(59, 130, 246, 1)',
        'color-brand-content': 'rgba(59, 130, 246, 1)',
    },
    'dark_css_variables': {
        'color-brand-primary': 'rgba(96, 165, 250, 1)',
        'color-brand-content': 'rgba(96, 165, 250, 1)',
    },
    'navigation_with_keys': True,
}
highlight_language = 'python'
