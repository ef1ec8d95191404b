"""Durable -> fast tier promotion."""

from .promoter import TierPromoter, TransferState, TransferTask
from .storage import FastTierStore, GatewayFetcher, MediaBlob, SupabaseFastTierStore, TransferError

__all__ = [
    "TierPromoter",
    "TransferState",
    "TransferTask",
    "FastTierStore",
    "GatewayFetcher",
    "MediaBlob",
    "SupabaseFastTierStore",
    "TransferError",
]
