"""Extensions controller package.

This package contains the translation of the cluster extensions
configuration into Chart records and the reconciliation of those records
into helm releases.
"""

from .controller import ExtensionsController
from .reconciler import ChartReconciler
from .synchronizer import ExtensionsSynchronizer, add_openebs_extension

__all__ = [
    "ExtensionsController",
    "ChartReconciler",
    "ExtensionsSynchronizer",
    "add_openebs_extension",
]
