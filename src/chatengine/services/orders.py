"""Order and appointment services backed by idempotent submission."""

import itertools
import logging
import threading
import uuid
from datetime import datetime

from chatengine.services.models import (
    Appointment,
    CartItem,
    CatalogError,
    Doctor,
    Order,
    Page,
)
from chatengine.services.submission import BackendSubmitter, SubmissionKind

logger = logging.getLogger(__name__)

ORDERS_PATH = "/orders"
APPOINTMENTS_PATH = "/appointments"

SEED_DOCTORS = (
    Doctor("doc-001", "Dr. Adaeze Okafor", "cardiologist", "Lagos"),
    Doctor("doc-002", "Dr. Tunde Bakare", "cardiologist", "Abuja"),
    Doctor("doc-003", "Dr. Ngozi Eze", "pediatrician", "Lagos"),
    Doctor("doc-004", "Dr. Musa Ibrahim", "pediatrician", "Kano"),
    Doctor("doc-005", "Dr. Funmi Adeyemi", "dermatologist", "Ibadan"),
    Doctor("doc-006", "Dr. Chidi Nwosu", "neurologist", "Enugu"),
    Doctor("doc-007", "Dr. Amaka Obi", "gynecologist", "Lagos"),
    Doctor("doc-008", "Dr. Segun Ogunleye", "general practitioner", "Lagos"),
    Doctor("doc-009", "Dr. Zainab Bello", "general practitioner", "Abuja"),
    Doctor("doc-010", "Dr. Emeka Umeh", "dentist", "Port Harcourt"),
    Doctor("doc-011", "Dr. Kemi Alade", "psychiatrist", "Lagos"),
    Doctor("doc-012", "Dr. Ifeanyi Okeke", "orthopedic", "Abuja"),
)


class InMemoryOrderService:
    """Orders kept locally and synchronized to the backend."""

    def __init__(self, submitter: BackendSubmitter, first_order_id: int = 10001) -> None:
        self._submitter = submitter
        self._orders: dict[str, Order] = {}
        self._ids = itertools.count(first_order_id)
        self._lock = threading.Lock()

    async def place_order(
        self,
        user_id: str,
        items: list[CartItem],
        address: str,
        phone: str,
        payment_method: str,
    ) -> Order:
        """Create an order and submit it.

        Raises:
            CatalogError: If there are no items.
        """
        if not items:
            raise CatalogError("Your cart is empty")
        with self._lock:
            order_id = str(next(self._ids))

        order = Order(
            id=order_id,
            user_id=user_id,
            items=list(items),
            address=address,
            phone=phone,
            payment_method=payment_method,
        )
        record = await self._submitter.submit(
            SubmissionKind.ORDER,
            ORDERS_PATH,
            {
                "order_id": order.id,
                "user_id": user_id,
                "items": [item.to_item() for item in items],
                "address": address,
                "phone": phone,
                "payment_method": payment_method,
                "total": order.total,
            },
        )
        order.sync_status = record.status.value
        with self._lock:
            self._orders[order.id] = order
        logger.info("Order placed (order_id=%s, sync=%s)", order.id, order.sync_status)
        return order

    async def track(self, user_id: str, order_id: str) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
        if order is None or order.user_id != user_id:
            return None
        return order

    async def attach_prescription(self, user_id: str, order_id: str, media_id: str) -> Order:
        """Link an uploaded prescription to an order.

        Raises:
            CatalogError: If the order does not exist for this user.
        """
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.user_id != user_id:
                raise CatalogError(f"Order {order_id} not found")
            order.prescriptions.append(media_id)
        logger.info("Prescription attached (order_id=%s)", order_id)
        return order


class InMemoryAppointmentService:
    """Seeded doctor directory and bookings synchronized to the backend."""

    def __init__(
        self, submitter: BackendSubmitter, doctors: tuple[Doctor, ...] = SEED_DOCTORS
    ) -> None:
        self._submitter = submitter
        self._doctors = list(doctors)
        self._appointments: list[Appointment] = []
        self._reserved: set[tuple[str, datetime]] = set()
        self._lock = threading.Lock()

    async def search_doctors(
        self, specialty: str | None, page: int, page_size: int
    ) -> Page[Doctor]:
        doctors = [
            d
            for d in self._doctors
            if d.available and (specialty is None or d.specialty == specialty.lower())
        ]
        start = (page - 1) * page_size
        return Page(items=doctors[start : start + page_size], total=len(doctors))

    async def book(self, user_id: str, doctor: Doctor, scheduled_at: datetime) -> Appointment:
        """Book an appointment and submit it.

        The slot is reserved before the submission so concurrent bookings for
        the same doctor and time cannot both succeed.

        Raises:
            CatalogError: If the doctor already has a booking at that time.
        """
        slot = (doctor.id, scheduled_at)
        with self._lock:
            taken = slot in self._reserved or any(
                (a.doctor_id, a.scheduled_at) == slot for a in self._appointments
            )
            if taken:
                raise CatalogError("That time slot is already booked")
            self._reserved.add(slot)

        appointment = Appointment(
            id=f"apt-{uuid.uuid4().hex[:8]}",
            user_id=user_id,
            doctor_id=doctor.id,
            doctor_name=doctor.name,
            specialty=doctor.specialty,
            scheduled_at=scheduled_at,
        )
        try:
            record = await self._submitter.submit(
                SubmissionKind.APPOINTMENT,
                APPOINTMENTS_PATH,
                {
                    "appointment_id": appointment.id,
                    "user_id": user_id,
                    "doctor_id": doctor.id,
                    "scheduled_at": scheduled_at.isoformat(),
                },
            )
        except BaseException:
            with self._lock:
                self._reserved.discard(slot)
            raise

        appointment.sync_status = record.status.value
        with self._lock:
            self._appointments.append(appointment)
            self._reserved.discard(slot)
        logger.info(
            "Appointment booked (id=%s, doctor=%s, sync=%s)",
            appointment.id,
            doctor.id,
            appointment.sync_status,
        )
        return appointment

    async def list_appointments(self, user_id: str) -> list[Appointment]:
        with self._lock:
            return [a for a in self._appointments if a.user_id == user_id]
