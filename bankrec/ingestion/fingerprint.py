"""
Duplicate import guard.

A statement is identified by the SHA-256 of its raw bytes. Byte-identical
content is rejected whatever the file is called; a re-export of the same
period with any formatting change is a new statement.
"""

import hashlib
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.tables import BankStatementRow
from ..exceptions import DuplicateFileError

logger = structlog.get_logger()


class DuplicateImportGuard:
    """Content fingerprinting and at-most-once import check."""

    @staticmethod
    def fingerprint(raw: bytes) -> str:
        """Hex SHA-256 digest of the whole file content."""
        return hashlib.sha256(raw).hexdigest()

    def find_existing(self, session: Session, file_hash: str) -> Optional[int]:
        """Id of the statement already holding this fingerprint, if any."""
        return session.scalar(
            select(BankStatementRow.id).where(BankStatementRow.file_hash == file_hash)
        )

    def check(self, session: Session, file_hash: str) -> None:
        """
        Reject content that was imported before.

        Raises:
            DuplicateFileError: if a statement with the same fingerprint exists
        """
        existing_id = self.find_existing(session, file_hash)
        if existing_id is not None:
            logger.info("Duplicate import rejected", file_hash=file_hash, statement_id=existing_id)
            raise DuplicateFileError(file_hash, existing_id)
