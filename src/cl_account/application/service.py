"""AccountApplicationService: registration and visibility-checked reads.

Registration runs in its own unit of work: the user row and its single
account row are created together or not at all.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.cl_account.application.schemas import AccountResponse, RegisterResponse
from src.cl_account.domain.models import Account, normalize_email
from src.cl_account.domain.repository import AccountRepositoryProtocol
from src.cl_account.infrastructure.persistence import AccountRepository
from src.cl_common.database import unit_of_work
from src.cl_common.errors import (
    AccountNotFoundError,
    InvalidEmailError,
    PermissionDeniedError,
)
from src.cl_common.identity import CallerIdentity

logger = logging.getLogger(__name__)


class AccountApplicationService:
    def __init__(self, repo: AccountRepositoryProtocol | None = None) -> None:
        self._repo: AccountRepositoryProtocol = repo or AccountRepository()

    async def register_account_holder(
        self, db: AsyncSession, email: str, is_admin: bool = False
    ) -> RegisterResponse:
        normalized = normalize_email(email or "")
        local, _, domain = normalized.partition("@")
        if not local or not domain:
            raise InvalidEmailError(email)

        async with unit_of_work(db):
            user, account = await self._repo.create_user_with_account(
                db, normalized, is_admin
            )
        logger.info(
            "Registered user %s (%s) with account %s", user.id, user.email, account.id
        )
        return RegisterResponse(
            user_id=user.id,
            account_id=account.id,
            email=user.email,
            is_admin=user.is_admin,
        )

    async def visible_account(
        self, db: AsyncSession, caller: CallerIdentity, account_id: int | None = None
    ) -> Account:
        """The caller's own account, or any account when the caller is an admin."""
        if account_id is None:
            account = await self._repo.find_account_by_user_id(db, caller.user_id)
            if account is None:
                raise AccountNotFoundError(f"user {caller.user_id}")
            return account

        account = await self._repo.get_account(db, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        if account.user_id != caller.user_id and not caller.is_admin:
            raise PermissionDeniedError("Cannot read another user's account")
        return account

    async def get_account(
        self, db: AsyncSession, caller: CallerIdentity, account_id: int | None = None
    ) -> AccountResponse:
        account = await self.visible_account(db, caller, account_id)
        return AccountResponse.from_domain(account)
