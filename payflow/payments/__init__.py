"""
Module 'payments' (feature-first): point d'entrée public.
Types et erreurs du flux de paiement; les cas d'usage restent dans leurs modules
(checkout, gateway, reconciliation, service) pour éviter les imports circulaires
avec courses/orders/catalog.
"""

from .errors import (
    PaymentError,
    SubjectNotFound,
    AlreadyEntitled,
    CheckoutInProgress,
    SessionCreationFailed,
    VerificationFailed,
    IntentNotFound,
    ReconciliationConflict,
    ReconciliationFailure,
    PaymentNotConfirmed,
    SessionForbidden,
    LedgerError,
    ProviderNotConfigured,
    ProviderUnavailable,
)
from .models import (
    SubjectType,
    IntentState,
    SubjectRef,
    PurchaseIntent,
    ProviderEvent,
    CheckoutResult,
)
from .metadata import make_metadata, extract_intent_id, to_line_items

__all__ = [
    # errors
    "PaymentError",
    "SubjectNotFound",
    "AlreadyEntitled",
    "CheckoutInProgress",
    "SessionCreationFailed",
    "VerificationFailed",
    "IntentNotFound",
    "ReconciliationConflict",
    "ReconciliationFailure",
    "PaymentNotConfirmed",
    "SessionForbidden",
    "LedgerError",
    "ProviderNotConfigured",
    "ProviderUnavailable",
    # models
    "SubjectType",
    "IntentState",
    "SubjectRef",
    "PurchaseIntent",
    "ProviderEvent",
    "CheckoutResult",
    # metadata
    "make_metadata",
    "extract_intent_id",
    "to_line_items",
]
