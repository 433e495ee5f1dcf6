"""Account service: typed strategy/venue accounts over the generic account row."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from small_ledger.domain.enums import AccountKind
from small_ledger.domain.errors import AccountKindMismatch, DuplicateAccountName, UnknownAccount
from small_ledger.domain.models import Account
from small_ledger.domain.reference import ReferenceRegistry
from small_ledger.domain.timestamps import utc_now

if TYPE_CHECKING:
    from sqlmodel import Session

    from small_ledger.data_access.ledger_repository import LedgerRepository

logger = logging.getLogger(__name__)


def require_account(session: Session, account_id: int, kind: AccountKind | None = None) -> Account:
    """Load an account inside ``session``, optionally checking its kind.

    Raises:
        UnknownAccount: If no account has this id.
        AccountKindMismatch: If the account is not of ``kind``.
    """
    account = session.get(Account, account_id)
    if account is None:
        raise UnknownAccount(account_id)
    if kind is not None and account.kind != kind.value:
        raise AccountKindMismatch(account_id, expected=kind.value, actual=account.kind)
    return account


class AccountService:
    """Creates and looks up strategy and venue accounts.

    Specialization is fixed at creation; this service exposes no update path.

    Args:
        repository: Ledger repository.
        reference: Reference registry used to validate venue names.
    """

    def __init__(self, repository: LedgerRepository, reference: ReferenceRegistry | None = None) -> None:
        self._repo = repository
        self._reference = reference or ReferenceRegistry()

    def create_strategy_account(self, name: str, description: str = "") -> int:
        """Create an internal account for a trading strategy.

        Raises:
            DuplicateAccountName: If a strategy with this name exists.
        """
        return self._create(AccountKind.STRATEGY, name, description)

    def create_venue_account(self, venue: str, description: str = "") -> int:
        """Create the external account for a venue.

        Raises:
            UnknownVenue: If the venue is not in the reference registry.
            DuplicateAccountName: If the venue already has an account.
        """
        self._reference.validate_venue(venue)
        return self._create(AccountKind.VENUE, venue, description)

    def _create(self, kind: AccountKind, natural_key: str, description: str) -> int:
        if not natural_key:
            raise ValueError(f"{kind.value} account requires a non-empty name")

        account = Account(kind=kind.value, natural_key=natural_key, description=description, created_at=utc_now())
        with self._repo.get_session() as session:
            session.add(account)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateAccountName(kind.value, natural_key) from e
            account_id: int = account.id  # type: ignore[assignment]

        logger.info(f"Created {kind.value} account {natural_key!r} (id={account_id})")
        return account_id

    def get_account(self, account_id: int) -> Account:
        """Get an account by id.

        Raises:
            UnknownAccount: If no account has this id.
        """
        with self._repo.get_session() as session:
            return require_account(session, account_id)

    def get_strategy_account(self, name: str) -> Account:
        """Get a strategy account by strategy name."""
        return self._get_by_natural_key(AccountKind.STRATEGY, name)

    def get_venue_account(self, venue: str) -> Account:
        """Get a venue account by venue name."""
        return self._get_by_natural_key(AccountKind.VENUE, venue)

    def _get_by_natural_key(self, kind: AccountKind, natural_key: str) -> Account:
        stmt = select(Account).where(Account.kind == kind.value, Account.natural_key == natural_key)
        with self._repo.get_session() as session:
            account = session.execute(stmt).scalar_one_or_none()  # pyrefly: ignore[deprecated]
        if account is None:
            raise UnknownAccount(natural_key)
        return account

    def list_accounts(self, kind: AccountKind | None = None) -> list[Account]:
        """List accounts, optionally restricted to one kind, ordered by id."""
        stmt = select(Account).order_by(Account.id)
        if kind is not None:
            stmt = stmt.where(Account.kind == kind.value)
        with self._repo.get_session() as session:
            return list(session.execute(stmt).scalars().all())  # pyrefly: ignore[deprecated]
