"""
Core Resilience — Webhook Delivery Safeguards.

- IdempotencyStore: recognize platform redeliveries of the same message
"""
from core.resilience.idempotency import (
    IdempotencyRecord,
    IdempotencyStatus,
    IdempotencyStore,
)

__all__ = [
    "IdempotencyRecord",
    "IdempotencyStatus",
    "IdempotencyStore",
]
