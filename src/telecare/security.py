from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import Depends, Header, Security
from fastapi.security import APIKeyHeader

from src.telecare.config import settings
from src.telecare.domain.models.account import Account, AccountRole
from src.telecare.domain.models.soap_report import SOAPReport
from src.telecare.errors import Forbidden, NotFound, Unauthorized
from src.telecare.services.accounts.role_guard import role_guard

# The upstream session gateway authenticates itself with this header when
# ENABLE_API_AUTH is true.
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _parse_api_keys() -> List[str]:
    """Return the configured API keys as a normalized list.

    API_KEYS is treated as a comma-separated list. Whitespace is stripped and
    empty entries are ignored.
    """

    if not settings.api_keys:
        return []
    return [key.strip() for key in settings.api_keys.split(",") if key.strip()]


async def get_api_key(api_key: Optional[str] = Security(_api_key_header)) -> str:
    """FastAPI dependency for API-key authentication of the session gateway.

    - If ENABLE_API_AUTH is false (default for development/tests), this is a
      no-op and always succeeds.
    - If ENABLE_API_AUTH is true, a valid API key must be supplied in the
      X-API-Key header and match the configured API_KEYS list.
    """

    if not settings.enable_api_auth:
        return ""

    allowed_keys = _parse_api_keys()
    if not allowed_keys:
        raise Unauthorized("API authentication is enabled but no API keys are configured.")
    if not api_key or api_key not in allowed_keys:
        raise Unauthorized("Invalid or missing API key.")
    return api_key


async def get_current_account(
    x_account_id: Optional[str] = Header(None, alias="X-Account-ID"),
    api_key: str = Depends(get_api_key),
) -> Account:
    """Resolve the account the session gateway forwarded for this request.

    Authentication happens upstream; this service trusts the forwarded id but
    still requires it to name an existing account.
    """

    if not x_account_id:
        raise Unauthorized("No active session")
    try:
        account_id = UUID(x_account_id)
    except ValueError as exc:
        raise Unauthorized("Invalid session") from exc

    account = role_guard.accounts.get(account_id)
    if account is None:
        raise Unauthorized("Invalid session")
    return account


async def get_current_doctor(account: Account = Depends(get_current_account)) -> Account:
    if account.role != AccountRole.DOCTOR:
        raise Forbidden("Only doctors can review reports")
    return account


async def get_current_patient(account: Account = Depends(get_current_account)) -> Account:
    if account.role != AccountRole.PATIENT:
        raise Forbidden("Only patients can perform this action")
    return account


def ensure_can_view_report(account: Account, report: SOAPReport) -> None:
    """Doctors can view any report; patients only their own.

    Another patient's report is reported as missing rather than forbidden so
    its existence is not revealed.
    """

    if account.role == AccountRole.DOCTOR:
        return
    if account.role == AccountRole.PATIENT:
        if report.patient_id == str(account.id):
            return
        raise NotFound("Report not found")
    raise Forbidden("Not authorized to view this report")
