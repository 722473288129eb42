"""Business collaborators, backend client, retries and submission ledger."""

from chatengine.services.backend import BackendClient, BackendError
from chatengine.services.container import Services, build_in_memory_services
from chatengine.services.models import (
    Account,
    AccountError,
    Appointment,
    CartItem,
    CatalogError,
    DiagnosticTest,
    Doctor,
    Order,
    OrderStatus,
    Page,
    Product,
    SupportUnavailableError,
)
from chatengine.services.retry import (
    RetryConfig,
    RetryResult,
    is_retryable_error,
    retry_with_backoff,
)
from chatengine.services.submission import (
    BackendSubmitter,
    SubmissionKind,
    SubmissionLedger,
    SubmissionRecord,
    SubmissionStatus,
)

__all__ = [
    "Services",
    "build_in_memory_services",
    "BackendClient",
    "BackendError",
    "RetryConfig",
    "RetryResult",
    "is_retryable_error",
    "retry_with_backoff",
    "BackendSubmitter",
    "SubmissionLedger",
    "SubmissionRecord",
    "SubmissionKind",
    "SubmissionStatus",
    "Account",
    "AccountError",
    "Appointment",
    "CartItem",
    "CatalogError",
    "DiagnosticTest",
    "Doctor",
    "Order",
    "OrderStatus",
    "Page",
    "Product",
    "SupportUnavailableError",
]
