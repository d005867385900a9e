"""
Transfer status tracking

Sources (aggregator API, on-chain packet correlation, protocol scanner) are
polled together and merged by stage rank so the published stage never
moves backwards.
"""

from .correlator import CorrelationResult, PacketCorrelator
from .models import Stage, TransferContext, TransferStatus, stage_rank
from .poller import StatusTracker, TransferPoller
from .reconciler import StatusReconciler, merge

__all__ = [
    "Stage",
    "TransferStatus",
    "TransferContext",
    "stage_rank",
    "merge",
    "StatusReconciler",
    "PacketCorrelator",
    "CorrelationResult",
    "TransferPoller",
    "StatusTracker",
]
