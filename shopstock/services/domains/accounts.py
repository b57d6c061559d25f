"""Account aggregate: the only way a user balance changes.

Loaded inside a transaction; debit and credit stage the new balance on that
transaction, so a balance move commits or aborts together with the stock
movement that caused it.
"""

from datetime import datetime
from decimal import Decimal

from shopstock.errors import ERROR_INSUFFICIENT_BALANCE
from shopstock.services.models import UserAccount
from shopstock.services.money import compare, round_money, to_decimal
from shopstock.services.repositories import AccountRepository
from shopstock.services.store import Transaction


class Account:
    """Balance of one user, bound to an open transaction."""

    def __init__(self, record: UserAccount, repo: AccountRepository) -> None:
        self._record = record
        self._repo = repo

    @classmethod
    async def load(cls, txn: Transaction, user_id: str) -> "Account | None":
        repo = AccountRepository(txn)
        record = await repo.get(user_id)
        return cls(record, repo) if record else None

    @classmethod
    def open(cls, txn: Transaction, user_id: str) -> "Account":
        """New zero-balance account. Nothing is written until credited."""
        return cls(UserAccount(id=user_id, balance=Decimal("0")), AccountRepository(txn))

    @property
    def user_id(self) -> str:
        return self._record.id

    @property
    def balance(self) -> Decimal:
        return self._record.balance

    def has_funds(self, amount: Decimal) -> bool:
        return compare(self.balance, amount) >= 0

    def debit(self, amount: Decimal, now: datetime) -> Decimal:
        amount = to_decimal(amount)
        if amount < 0:
            raise ValueError("Debit amount must not be negative")
        if not self.has_funds(amount):
            raise ValueError(ERROR_INSUFFICIENT_BALANCE)
        return self._apply(self.balance - amount, now)

    def credit(self, amount: Decimal, now: datetime) -> Decimal:
        amount = to_decimal(amount)
        if amount < 0:
            raise ValueError("Credit amount must not be negative")
        return self._apply(self.balance + amount, now)

    def _apply(self, new_balance: Decimal, now: datetime) -> Decimal:
        self._record = self._record.model_copy(
            update={"balance": round_money(new_balance), "updated_at": now}
        )
        self._repo.save(self._record)
        return self._record.balance
