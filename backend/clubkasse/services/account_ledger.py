# Overview: Account ledger; the only code path that writes Account.balance_cents.

from __future__ import annotations

from ..models import Account
from clubkasse.time_utils import utcnow
from clubkasse.validation import AccountNotFoundError
from .concurrency import lock_for_update


class AccountLedger:
    """
    Single source of truth for member balances.

    Invariants:
    - balance_cents changes ONLY through adjust_balance, which is called by the
      TransactionCoordinator inside its own database transaction.
    - adjust_balance never commits. The caller owns the transaction boundary,
      so a balance change is committed together with the transaction rows it
      belongs to, or not at all.
    - The row is read with SELECT ... FOR UPDATE and written through the
      version_id_col check, so two concurrent sales cannot both read the
      same starting balance and overwrite each other.
    - No audit rows are written here; Transaction rows are the audit trail.
    """

    def __init__(self, session):
        self.session = session

    def _load(self, account_id: int, *, lock: bool = False) -> Account:
        query = self.session.query(Account).filter_by(id=account_id)
        if lock:
            query = lock_for_update(query)
        account = query.first()
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    def get_account(self, account_id: int, *, lock: bool = False) -> Account:
        return self._load(account_id, lock=lock)

    def get_balance(self, account_id: int) -> int:
        return self._load(account_id).balance_cents

    def adjust_balance(self, account_id: int, delta_cents: int) -> int:
        """
        Add delta_cents (signed) to the balance and return the new balance.

        The UPDATE is flushed immediately so a concurrent writer is detected
        here (StaleDataError) rather than at commit time.
        """
        account = self._load(account_id, lock=True)
        if delta_cents:
            account.balance_cents = account.balance_cents + delta_cents
        account.last_activity_at = utcnow()
        self.session.flush()
        return account.balance_cents
