"""
Taxonomie des erreurs du coeur achats / stock.

Chaque erreur porte un ``kind`` stable et un code HTTP équivalent.
La traduction en réponse HTTP est faite par la couche API
(backend.app.main), jamais ici.
"""

from __future__ import annotations


class ProcurementError(Exception):
    kind = "ProcurementError"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "detail": self.message}


class NotFound(ProcurementError):
    kind = "NotFound"
    status_code = 404


class InvalidState(ProcurementError):
    kind = "InvalidState"


class InactiveSupplier(ProcurementError):
    kind = "InactiveSupplier"


class SelfApproval(ProcurementError):
    kind = "SelfApproval"


class InvalidInput(ProcurementError):
    kind = "ValidationError"


class InvalidQuantity(ProcurementError):
    kind = "InvalidQuantity"


class InsufficientStock(InvalidQuantity):
    pass


class EmptySource(ProcurementError):
    kind = "EmptySource"


class PermissionDenied(ProcurementError):
    kind = "PermissionDenied"
    status_code = 403


class ConcurrencyConflict(ProcurementError):
    kind = "ConcurrencyConflict"
    status_code = 409


class StorageFailure(ProcurementError):
    kind = "StorageFailure"
    status_code = 500
