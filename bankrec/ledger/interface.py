"""
Interfaces to the bookkeeping core.

The reconciliation engine never owns accounting transactions or parties; it
reads them (and flips payment status) through these seams. Implementations
bind to the caller's session so that candidate selection and the match
commit share a single transaction.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

from ..models import AccountingTransaction, Party, PaymentStatus, VoucherType


class AccountingLedger(ABC):
    """Query/update interface over recorded accounting transactions."""

    @abstractmethod
    def find_open_transactions(
        self,
        voucher_type: VoucherType,
        start_date: date,
        end_date: date,
    ) -> List[AccountingTransaction]:
        """
        Active transactions of one voucher type, dated within [start, end],
        whose payment status is not PAID. Ordered by id.
        """

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Optional[AccountingTransaction]:
        """Retrieve a transaction by id, None if unknown."""

    @abstractmethod
    def update_payment_status(self, transaction_id: int, status: PaymentStatus) -> None:
        """Set the payment status of a transaction."""


class PartyRegistry(ABC):
    """Lookup interface over the customer/vendor registry."""

    @abstractmethod
    def list_active(self) -> List[Party]:
        """All active parties, ordered by id."""
