# File: stroutliers/__init__.py
# Location: stroutliers/stroutliers/__init__.py

"""
stroutliers Package.

This package runs STRling outlier detection one chromosome at a time:
it extracts each sample's rows for the chromosome from the per-sample
genotype tables, invokes the external outlier engine once, and merges the
per-sample results into a single chromosome-level table.
"""

from .version import __version__
