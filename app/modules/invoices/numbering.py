"""
Document numbering for invoices and quotations.

Numbers come from a per-company sequence row that is locked while it is
incremented, so two documents of the same type never share a number and
numbers never go backwards, even after documents are deleted.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.modules.invoices.models import DocumentSequence, DocumentType

logger = logging.getLogger(__name__)

DEFAULT_PREFIXES = {
    DocumentType.INVOICE: "INV-",
    DocumentType.QUOTATION: "Q-",
}


def format_document_number(prefix: str, number: int, padding: int = 4) -> str:
    return f"{prefix}{number:0{padding}d}"


class DocumentNumberGenerator:

    def __init__(self, db: Session):
        self.db = db

    def get_sequence(self, tenant_id: UUID, document_type: DocumentType, lock: bool = False) -> DocumentSequence:
        """Fetch the sequence row, creating it on first use."""
        query = self.db.query(DocumentSequence).filter(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type
        )
        if lock:
            query = query.with_for_update()

        sequence = query.first()
        if not sequence:
            sequence = DocumentSequence(
                tenant_id=tenant_id,
                document_type=document_type,
                prefix=DEFAULT_PREFIXES[document_type],
                current_number=0
            )
            self.db.add(sequence)
            self.db.flush()
        return sequence

    def next_number(self, tenant_id: UUID, document_type: DocumentType) -> str:
        """Reserve and return the next number. The caller commits."""
        sequence = self.get_sequence(tenant_id, document_type, lock=True)
        sequence.current_number += 1
        number = format_document_number(sequence.prefix, sequence.current_number, sequence.padding)
        logger.debug(f"Reserved {document_type.value} number {number} for tenant {tenant_id}")
        return number

    def peek_next_number(self, tenant_id: UUID, document_type: DocumentType) -> str:
        sequence = self.get_sequence(tenant_id, document_type)
        return format_document_number(sequence.prefix, sequence.current_number + 1, sequence.padding)

    def configure(
        self,
        tenant_id: UUID,
        document_type: DocumentType,
        prefix: Optional[str] = None,
        next_number: Optional[int] = None
    ) -> DocumentSequence:
        """Change prefix and/or the next number to issue."""
        sequence = self.get_sequence(tenant_id, document_type, lock=True)

        if next_number is not None:
            if next_number <= sequence.current_number:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=(
                        f"Next {document_type.value} number must be greater than "
                        f"the last issued number ({sequence.current_number})"
                    )
                )
            sequence.current_number = next_number - 1

        if prefix is not None:
            sequence.prefix = prefix

        return sequence
