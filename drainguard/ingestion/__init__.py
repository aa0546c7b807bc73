"""
Ingestion collaborators — resolvers the normalizer calls for data that is
not inside the transaction record itself (address lookup tables).
"""

from drainguard.ingestion.lookup_tables import (
    AddressLookupTableResolver,
    RpcLookupTableResolver,
    StaticLookupTableResolver,
)

__all__ = [
    "AddressLookupTableResolver",
    "RpcLookupTableResolver",
    "StaticLookupTableResolver",
]
