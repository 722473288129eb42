"""Bundle of collaborators handed to every turn handler."""

from dataclasses import dataclass

from chatengine.auth.otp import OtpStore
from chatengine.services.backend import BackendClient
from chatengine.services.memory import (
    InMemoryAccountService,
    InMemoryCatalogService,
    InMemorySupportService,
    LocalPaymentService,
    LoggingEmailService,
)
from chatengine.services.orders import InMemoryAppointmentService, InMemoryOrderService
from chatengine.services.protocols import (
    AccountService,
    AppointmentService,
    CatalogService,
    EmailService,
    OrderService,
    PaymentService,
    SupportService,
)
from chatengine.services.retry import RetryConfig
from chatengine.services.submission import BackendSubmitter, SubmissionLedger


@dataclass
class Services:
    accounts: AccountService
    catalog: CatalogService
    orders: OrderService
    appointments: AppointmentService
    payments: PaymentService
    email: EmailService
    support: SupportService
    otp: OtpStore


def build_in_memory_services(
    backend: BackendClient | None = None,
    retry_config: RetryConfig | None = None,
    otp_validity_minutes: int = 5,
) -> Services:
    """Build the in-memory collaborators.

    Args:
        backend: Backend client orders and appointments are synchronized
            to; without one they are confirmed locally.
        retry_config: Retry policy for backend submissions.
        otp_validity_minutes: Lifetime of issued codes.
    """
    submitter = BackendSubmitter(SubmissionLedger(), backend, retry_config)
    return Services(
        accounts=InMemoryAccountService(),
        catalog=InMemoryCatalogService(),
        orders=InMemoryOrderService(submitter),
        appointments=InMemoryAppointmentService(submitter),
        payments=LocalPaymentService(),
        email=LoggingEmailService(),
        support=InMemorySupportService(),
        otp=OtpStore(otp_validity_minutes),
    )
