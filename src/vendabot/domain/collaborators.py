"""Interfaces of the external collaborators the dialog depends on.

The payment gateway, the operator provisioning system, the credential
store and the chat transport are black boxes reached through these narrow
contracts. Adapters convert transport failures into the typed error results
below instead of raising into the dialog.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Literal, Protocol

if TYPE_CHECKING:
    from vendabot.domain.plans import Plan

AccountClass = Literal["trial", "official"]


@dataclass(frozen=True)
class PaymentQueryResult:
    """Normalized outcome of one gateway status query."""

    confirmed: bool
    settled_status: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class Charge:
    """A PIX charge created on the gateway."""

    transaction_id: str
    amount_cents: int
    due_at: datetime | None
    qr_payload: str
    qr_image_url: str | None = None
    order_id: str | None = None


@dataclass(frozen=True)
class ChargeError:
    reason: str


@dataclass(frozen=True)
class ProvisioningRequest:
    account_class: AccountClass
    package_id: int
    user_id: str
    note: str = ""


@dataclass(frozen=True)
class AccountCredentials:
    """Credentials of an account created on the operator system."""

    username: str
    password: str
    expires_at: str | None = None
    access_links: list[str] = field(default_factory=list)
    package_id: int | None = None

    def to_record(self) -> dict:
        return {
            "username": self.username,
            "password": self.password,
            "expires_at": self.expires_at,
            "access_links": list(self.access_links),
            "package_id": self.package_id,
        }

    @classmethod
    def from_record(cls, data: dict) -> AccountCredentials:
        return cls(
            username=data["username"],
            password=data["password"],
            expires_at=data.get("expires_at"),
            access_links=list(data.get("access_links") or []),
            package_id=data.get("package_id"),
        )


@dataclass(frozen=True)
class ProvisioningError:
    reason: str


class PaymentInitiator(Protocol):
    def create_charge(self, user_id: str, plan: Plan) -> Charge | ChargeError:
        ...


class PaymentStatusSource(Protocol):
    def query_status(self, transaction_id: str) -> PaymentQueryResult:
        ...


class ProvisioningGateway(Protocol):
    def provision(
        self, request: ProvisioningRequest
    ) -> AccountCredentials | ProvisioningError:
        ...


class CredentialStore(Protocol):
    def save(
        self, user_id: str, credentials: AccountCredentials, account_class: AccountClass
    ) -> None:
        ...

    def get(self, user_id: str) -> dict[str, AccountCredentials]:
        ...


class MessageTransport(Protocol):
    async def send(self, user_id: str, text: str) -> None:
        ...
