from .entitlement_cache import CachedEntitlement, LocalEntitlementCache  # noqa: F401
from .entitlement_sync import EntitlementSnapshot, EntitlementSync  # noqa: F401
from .kv_store import InMemoryKeyValueStore, JsonFileKeyValueStore, KeyValueStore  # noqa: F401
from .premium_api import (  # noqa: F401
    PremiumApiClient,
    PremiumApiError,
    PremiumApiRejected,
    PremiumApiUnauthenticated,
    PremiumApiUnreachable,
    RedeemOutcome,
)
