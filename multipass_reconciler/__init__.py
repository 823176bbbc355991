"""
Reconciliation of declared multipass VM specs against the instances
multipass actually runs.
"""

from multipass_reconciler.models import VmRecord, VmSpec, VmState
from multipass_reconciler.reconciler import InstanceReconciler
from multipass_reconciler.registry import InstanceRegistry

__version__ = "0.1.0"

__all__ = ["InstanceReconciler", "InstanceRegistry", "VmRecord", "VmSpec", "VmState"]
