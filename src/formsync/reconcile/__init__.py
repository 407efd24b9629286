"""
Form definition reconciliation.
"""

from .reconciler import FormDefinitionReconciler, reconcile

__all__ = [
    "FormDefinitionReconciler",
    "reconcile",
]
