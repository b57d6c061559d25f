"""Account Repository - balances on user records."""

from shopstock.services.models import UserAccount

from .base import BaseRepository


class AccountRepository(BaseRepository[UserAccount]):
    """User balance operations. Mutated only through the Account aggregate."""

    model = UserAccount

    def save(self, account: UserAccount) -> None:
        self._put(account)
