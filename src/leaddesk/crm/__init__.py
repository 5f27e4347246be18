"""CRM entity synchronization layer -- dual-mode (hosted store / local-only).

Provides the abstract RemoteStore gateway with its Supabase implementation,
and the EntitySynchronizer that keeps contacts, companies, pipeline stages,
deals, activities, email campaigns and generated documents consistent
between in-memory state and the store:
- RemoteStore: fail-soft gateway interface (never raises to callers)
- SupabaseGateway: PostgREST implementation over httpx
- EntitySynchronizer: branch-per-intent synchronization with delete cascades
- IdentityGenerator: local-only ids and timestamps
- DerivedViews: memoized read-only projections (board, contact detail)

Architecture: the store is optional. Without SUPABASE_URL/SUPABASE_ANON_KEY
everything runs in memory with ``local-`` ids for the session.
"""

from src.leaddesk.crm.field_mapping import ENTITY_TABLES, EntityKind, from_row, to_row
from src.leaddesk.crm.gateway import RemoteStore
from src.leaddesk.crm.identity import IdentityGenerator, is_local_id
from src.leaddesk.crm.supabase import SupabaseGateway
from src.leaddesk.crm.synchronizer import CollectionState, EntitySynchronizer
from src.leaddesk.crm.views import DerivedViews

__all__ = [
    "RemoteStore",
    "SupabaseGateway",
    "EntitySynchronizer",
    "CollectionState",
    "IdentityGenerator",
    "is_local_id",
    "DerivedViews",
    "EntityKind",
    "ENTITY_TABLES",
    "to_row",
    "from_row",
]
