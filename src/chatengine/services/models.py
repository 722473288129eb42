"""Records exchanged with the business collaborators."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class AccountError(Exception):
    """Raised when registration, login or a password change fails."""

    pass


class CatalogError(Exception):
    """Raised when a catalog, cart or order lookup fails."""

    pass


class SupportUnavailableError(Exception):
    """Raised when a support chat cannot be started or a message forwarded."""

    pass


@dataclass
class Page(Generic[T]):
    """One page of a listing plus the total item count."""

    items: list[T]
    total: int


@dataclass
class Account:
    user_id: str
    name: str
    email: str
    phone: str | None = None


@dataclass
class Product:
    id: str
    name: str
    price: float
    category: str = "medicine"
    description: str = ""

    def to_item(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DiagnosticTest:
    id: str
    name: str
    price: float
    sample: str = ""

    def to_item(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Doctor:
    id: str
    name: str
    specialty: str
    location: str = ""
    available: bool = True

    def to_item(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CartItem:
    product_id: str
    name: str
    price: float
    quantity: int = 1

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity

    def to_item(self) -> dict[str, Any]:
        return {**asdict(self), "subtotal": self.subtotal}


class OrderStatus(str, Enum):
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


@dataclass
class Order:
    id: str
    user_id: str
    items: list[CartItem]
    address: str
    phone: str
    payment_method: str
    status: OrderStatus = OrderStatus.PROCESSING
    created_at: datetime = field(default_factory=datetime.now)
    prescriptions: list[str] = field(default_factory=list)
    # Backend synchronization state, see SubmissionStatus
    sync_status: str = "confirmed"

    @property
    def total(self) -> float:
        return sum(item.subtotal for item in self.items)


@dataclass
class Appointment:
    id: str
    user_id: str
    doctor_id: str
    doctor_name: str
    specialty: str
    scheduled_at: datetime
    status: str = "Scheduled"
    sync_status: str = "confirmed"
