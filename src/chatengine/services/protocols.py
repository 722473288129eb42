"""Interfaces of the business collaborators the handlers call."""

from datetime import datetime
from typing import Protocol

from chatengine.services.models import (
    Account,
    Appointment,
    CartItem,
    DiagnosticTest,
    Doctor,
    Order,
    Page,
    Product,
)
from chatengine.whatsapp.messages import OutboundMessage


class AccountService(Protocol):
    async def register(
        self, name: str, email: str, password: str, phone: str | None = None
    ) -> Account: ...

    async def authenticate(self, email: str, password: str) -> Account: ...

    async def exists(self, email: str) -> bool: ...

    async def reset_password(self, email: str, new_password: str) -> None: ...


class CatalogService(Protocol):
    async def search_products(self, query: str, page: int, page_size: int) -> Page[Product]: ...

    async def healthcare_products(
        self, category: str | None, page: int, page_size: int
    ) -> Page[Product]: ...

    async def diagnostic_tests(self, page: int, page_size: int) -> Page[DiagnosticTest]: ...

    async def get_product(self, product_id: str) -> Product | None: ...

    async def add_to_cart(
        self, user_id: str, product: Product, quantity: int
    ) -> list[CartItem]: ...

    async def get_cart(self, user_id: str) -> list[CartItem]: ...

    async def remove_from_cart(self, user_id: str, position: int) -> CartItem: ...

    async def clear_cart(self, user_id: str) -> None: ...


class OrderService(Protocol):
    async def place_order(
        self,
        user_id: str,
        items: list[CartItem],
        address: str,
        phone: str,
        payment_method: str,
    ) -> Order: ...

    async def track(self, user_id: str, order_id: str) -> Order | None: ...

    async def attach_prescription(self, user_id: str, order_id: str, media_id: str) -> Order: ...


class AppointmentService(Protocol):
    async def search_doctors(
        self, specialty: str | None, page: int, page_size: int
    ) -> Page[Doctor]: ...

    async def book(self, user_id: str, doctor: Doctor, scheduled_at: datetime) -> Appointment: ...

    async def list_appointments(self, user_id: str) -> list[Appointment]: ...


class PaymentService(Protocol):
    async def payment_link(self, order: Order, provider: str) -> str: ...


class EmailService(Protocol):
    async def send_otp(self, email: str, code: str, purpose: str) -> None: ...


class SupportService(Protocol):
    async def start(self, user_id: str, sender_id: str) -> str: ...

    async def forward(self, ticket_id: str, text: str) -> None: ...

    async def end(self, ticket_id: str) -> None: ...


class Messenger(Protocol):
    """Outbound channel to the user."""

    async def send(self, to: str, message: OutboundMessage) -> None: ...

    async def mark_read(self, message_id: str) -> None: ...
