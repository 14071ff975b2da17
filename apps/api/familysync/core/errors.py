from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from familysync.models.member import AccountStatus


class FamilySyncError(Exception):
    """Base class for every failure the directory sync can record or raise."""


class AccountUnavailable(FamilySyncError):
    def __init__(self, status: AccountStatus):
        self.status = status
        self.code = status.code
        super().__init__(f"account not available: {status.value} (code {status.code})")


class TransportFailure(FamilySyncError):
    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(message)


class MissingIdentity(FamilySyncError):
    def __init__(self, message: str = "current account id is not resolved"):
        super().__init__(message)


class NotRegistered(FamilySyncError):
    def __init__(self, message: str = "current account is not a member of this family"):
        super().__init__(message)


class RecordNotFound(FamilySyncError):
    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"record not found: {record_id}")
