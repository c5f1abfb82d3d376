"""
EDI error taxonomy.

Propagation policy:
  - MalformedEnvelope          file-level; stops that file only
  - UnterminatedTransactionSet never surfaced; incomplete sets are dropped
  - UnknownDocumentType        logged, transaction left as received
  - MissingReference           transaction marked failed, nothing mutated
  - TransportError             file left unprocessed, retried next poll
  - LedgerExhausted            fatal configuration defect
"""


class EDIError(Exception):
    """Base class for every EDI engine error."""


class MalformedEnvelope(EDIError):
    """Interchange header is too short or unreadable."""


class UnterminatedTransactionSet(EDIError):
    """ST segment without a matching SE."""


class UnknownDocumentType(EDIError):
    """Transaction set type has no registered decoder or handler."""

    def __init__(self, document_type: str):
        super().__init__(f"Unknown EDI document type: {document_type}")
        self.document_type = document_type


class MissingReference(EDIError):
    """Decoded document does not resolve to a purchase order or invoice."""


class TransportError(EDIError):
    """Remote file operation failed or timed out. Treated as transient."""


class LedgerExhausted(EDIError):
    """Control number ledger produced a value outside the X12 range."""
