"""
Paystack REST client.

Every call is a single attempt bounded by PAYSTACK_TIMEOUT_SECONDS; any
transport error, timeout, non-2xx response or `"status": false` body is
raised as PaymentGatewayError. Money-moving calls are never retried here:
callers retry with the same reference.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import httpx

from app.core.config import settings
from app.core.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILED = "failed"
PENDING = "pending"

# Paystack transaction statuses that are final but not successful
_FAILED_STATUSES = {"failed", "abandoned", "reversed"}


@dataclass
class InitializedTransaction:
    authorization_url: str
    access_code: str
    reference: str


@dataclass
class VerifiedTransaction:
    reference: str
    status: str                      # success | failed | pending
    amount_minor: int
    currency: Optional[str] = None
    paid_at: Optional[datetime] = None
    gateway_status: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Subaccount:
    subaccount_code: str
    business_name: str
    settlement_bank: str
    account_number: str
    percentage_charge: float


class PaymentGateway(Protocol):
    async def initialize(self, amount_minor: int, currency: str, reference: str, email: str,
                         callback_url: Optional[str] = None, metadata: Optional[dict] = None,
                         subaccount: Optional[str] = None, transaction_charge: Optional[int] = None,
                         bearer: Optional[str] = None) -> InitializedTransaction: ...

    async def verify(self, reference: str) -> VerifiedTransaction: ...

    async def create_subaccount(self, business_name: str, settlement_bank: str, account_number: str,
                                percentage_charge: float,
                                primary_contact_email: Optional[str] = None) -> Subaccount: ...

    async def resolve_account(self, account_number: str, bank_code: str) -> Dict[str, Any]: ...

    async def list_banks(self, country: Optional[str] = None) -> List[Dict[str, Any]]: ...


def normalize_status(gateway_status: Optional[str]) -> str:
    status = (gateway_status or "").lower()
    if status == "success":
        return SUCCESS
    if status in _FAILED_STATUSES:
        return FAILED
    return PENDING


def _parse_paid_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable paid_at from gateway: {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class PaystackClient:
    def __init__(self, secret_key: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.secret_key = secret_key if secret_key is not None else settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYSTACK_TIMEOUT_SECONDS
        self._transport = transport
        if not self.secret_key:
            logger.warning("PAYSTACK_SECRET_KEY is not set; gateway calls will be rejected")

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, action: str, **kwargs) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as http_client:
                response = await http_client.request(method, path, headers=self.headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Paystack {action} timed out after {self.timeout}s")
            raise PaymentGatewayError(f"Payment gateway timed out during {action}") from e
        except httpx.HTTPError as e:
            logger.error(f"Paystack {action} transport error: {e}")
            raise PaymentGatewayError(f"Failed to {action}: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or not body.get("status"):
            message = body.get("message") or response.text[:200]
            logger.error(f"Paystack {action} error ({response.status_code}): {message}")
            raise PaymentGatewayError(
                f"Failed to {action}: {message}",
                details={"gateway_status_code": response.status_code},
            )
        return body

    async def initialize(self, amount_minor: int, currency: str, reference: str, email: str,
                         callback_url: Optional[str] = None, metadata: Optional[dict] = None,
                         subaccount: Optional[str] = None, transaction_charge: Optional[int] = None,
                         bearer: Optional[str] = None) -> InitializedTransaction:
        payload: Dict[str, Any] = {
            "email": email,
            "amount": amount_minor,
            "currency": currency,
            "reference": reference,
        }
        if callback_url:
            payload["callback_url"] = callback_url
        if metadata:
            payload["metadata"] = metadata
        if subaccount:
            payload["subaccount"] = subaccount
            if transaction_charge is not None:
                payload["transaction_charge"] = transaction_charge
            if bearer:
                payload["bearer"] = bearer

        body = await self._request("POST", "/transaction/initialize", "initialize payment", json=payload)
        data = body.get("data") or {}
        return InitializedTransaction(
            authorization_url=data.get("authorization_url", ""),
            access_code=data.get("access_code", ""),
            reference=data.get("reference", reference),
        )

    async def verify(self, reference: str) -> VerifiedTransaction:
        body = await self._request("GET", f"/transaction/verify/{reference}", "verify payment")
        data = body.get("data") or {}
        return VerifiedTransaction(
            reference=data.get("reference", reference),
            status=normalize_status(data.get("status")),
            amount_minor=int(data.get("amount") or 0),
            currency=data.get("currency"),
            paid_at=_parse_paid_at(data.get("paid_at") or data.get("paidAt")),
            gateway_status=data.get("status"),
            raw={
                "status": data.get("status"),
                "gateway_response": data.get("gateway_response"),
                "channel": data.get("channel"),
                "fees": data.get("fees"),
            },
        )

    async def create_subaccount(self, business_name: str, settlement_bank: str, account_number: str,
                                percentage_charge: float,
                                primary_contact_email: Optional[str] = None) -> Subaccount:
        payload: Dict[str, Any] = {
            "business_name": business_name,
            "settlement_bank": settlement_bank,
            "account_number": account_number,
            "percentage_charge": percentage_charge,
        }
        if primary_contact_email:
            payload["primary_contact_email"] = primary_contact_email

        body = await self._request("POST", "/subaccount", "create subaccount", json=payload)
        data = body.get("data") or {}
        if not data.get("subaccount_code"):
            raise PaymentGatewayError("Failed to create subaccount: no subaccount code returned")
        return Subaccount(
            subaccount_code=data["subaccount_code"],
            business_name=data.get("business_name", business_name),
            settlement_bank=data.get("settlement_bank", settlement_bank),
            account_number=data.get("account_number", account_number),
            percentage_charge=float(data.get("percentage_charge", percentage_charge)),
        )

    async def resolve_account(self, account_number: str, bank_code: str) -> Dict[str, Any]:
        body = await self._request(
            "GET",
            "/bank/resolve",
            "resolve account",
            params={"account_number": account_number, "bank_code": bank_code},
        )
        return body.get("data") or {}

    async def list_banks(self, country: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"country": country} if country else None
        body = await self._request("GET", "/bank", "list banks", params=params)
        return body.get("data") or []
