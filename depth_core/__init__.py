"""Order-book synchronization engine shared by every venue stream."""

from .change_gate import AlwaysEmit, DedupGate, make_change_gate
from .order_set import IdentifiedOrderSet
from .price_levels import PriceBook, PriceLevelSet
from .records import build_rows
from .sync_engine import BookSyncEngine, ResyncPolicy, SyncResult, SyncState
from .volume import normalize, normalize_projection

__all__ = [
    "AlwaysEmit",
    "BookSyncEngine",
    "DedupGate",
    "IdentifiedOrderSet",
    "PriceBook",
    "PriceLevelSet",
    "ResyncPolicy",
    "SyncResult",
    "SyncState",
    "build_rows",
    "make_change_gate",
    "normalize",
    "normalize_projection",
]
