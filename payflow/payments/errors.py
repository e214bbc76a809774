"""
Taxonomie des erreurs du flux de paiement.
Chaque erreur porte le code HTTP sous lequel elle est exposée:
- au client qui initie un checkout (réponse synchrone),
- au fournisseur de paiement pour un webhook (2xx = acquitté, 5xx/409 = à redélivrer).
"""


class PaymentError(Exception):
    status_code = 500
    default_detail = "Erreur de paiement"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class SubjectNotFound(PaymentError):
    status_code = 404
    default_detail = "Sujet introuvable"


class AlreadyEntitled(PaymentError):
    status_code = 409
    default_detail = "Déjà acheté"


class CheckoutInProgress(PaymentError):
    status_code = 409
    default_detail = "Un paiement est déjà en cours pour ce cours"


class SessionCreationFailed(PaymentError):
    status_code = 502
    default_detail = "Erreur lors de la création de la session de paiement"


class VerificationFailed(PaymentError):
    status_code = 400
    default_detail = "Signature du webhook invalide"


class IntentNotFound(PaymentError):
    status_code = 404
    default_detail = "Intention d'achat introuvable"


class ReconciliationConflict(PaymentError):
    # Une autre livraison du même événement est en cours: le fournisseur réessaiera
    status_code = 409
    default_detail = "Réconciliation déjà en cours"


class ReconciliationFailure(PaymentError):
    status_code = 500
    default_detail = "Échec de la réconciliation"


class PaymentNotConfirmed(PaymentError):
    status_code = 400
    default_detail = "Paiement non confirmé"


class SessionForbidden(PaymentError):
    status_code = 403
    default_detail = "Session de paiement d'un autre utilisateur"


class LedgerError(PaymentError):
    status_code = 500
    default_detail = "Erreur d'accès au registre des achats"


class ProviderNotConfigured(PaymentError):
    status_code = 500
    default_detail = "Fournisseur de paiement non configuré"


class ProviderUnavailable(PaymentError):
    status_code = 502
    default_detail = "Fournisseur de paiement indisponible"
