"""Quota store adapters.

This package provides a small abstraction layer over per-client quota
accounting so the HTTP layer only sees ``consume``/``peek`` and the
``Admitted``/``Rejected`` outcomes.
"""

from gatekeeper.adapters.quota.base import (
    AbstractQuotaStore,
    Admitted,
    Outcome,
    QuotaRecord,
    QuotaSnapshot,
    Rejected,
)
from gatekeeper.adapters.quota.in_memory import ShardedInMemoryQuotaStore
from gatekeeper.adapters.quota.sweeper import QuotaSweeper

__all__ = [
    "AbstractQuotaStore",
    "Admitted",
    "Outcome",
    "QuotaRecord",
    "QuotaSnapshot",
    "QuotaSweeper",
    "Rejected",
    "ShardedInMemoryQuotaStore",
]
