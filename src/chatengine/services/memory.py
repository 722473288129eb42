"""In-memory business collaborators for single-instance deployments and tests."""

import hashlib
import hmac
import logging
import secrets
import threading
import uuid

from chatengine.nlp.fuzzy import fuzzy_match, normalize_text
from chatengine.services.models import (
    Account,
    AccountError,
    CartItem,
    CatalogError,
    DiagnosticTest,
    Order,
    Page,
    Product,
    SupportUnavailableError,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
PBKDF2_ITERATIONS = 100_000
SEARCH_THRESHOLD = 0.7

SEED_PRODUCTS = (
    Product("p-001", "Paracetamol 500mg", 500.0, description="Pain and fever relief, 20 tablets"),
    Product("p-002", "Paracetamol Syrup", 850.0, description="Children's syrup, 100ml"),
    Product("p-003", "Panadol Extra", 1200.0, description="Paracetamol with caffeine"),
    Product("p-004", "Aspirin 75mg", 650.0, description="Low dose, 28 tablets"),
    Product("p-005", "Ibuprofen 400mg", 900.0, description="Anti-inflammatory, 24 tablets"),
    Product("p-006", "Amoxicillin 500mg", 1500.0, description="Antibiotic, 21 capsules"),
    Product("p-007", "Augmentin 625mg", 4500.0, description="Antibiotic, 14 tablets"),
    Product("p-008", "Flagyl 400mg", 700.0, description="Metronidazole, 21 tablets"),
    Product("p-009", "Chloroquine 250mg", 600.0, description="Antimalarial, 10 tablets"),
    Product("p-010", "Vitamin C 1000mg", 1800.0, description="Effervescent, 20 tablets"),
    Product("p-011", "Insulin Pen", 9500.0, description="Rapid acting, 3ml"),
    Product("p-012", "Antihistamine Tablets", 750.0, description="Loratadine 10mg, 10 tablets"),
)

SEED_HEALTHCARE_PRODUCTS = (
    Product("h-001", "First Aid Kit", 6500.0, category="first aid"),
    Product("h-002", "Elastic Bandage", 900.0, category="first aid"),
    Product("h-003", "Digital Thermometer", 3500.0, category="medical devices"),
    Product("h-004", "Blood Pressure Monitor", 25000.0, category="medical devices"),
    Product("h-005", "Glucometer", 15000.0, category="medical devices"),
    Product("h-006", "Baby Diapers (Pack)", 5500.0, category="baby care"),
    Product("h-007", "Hand Sanitizer 500ml", 2200.0, category="personal care"),
    Product("h-008", "Omega-3 Capsules", 7000.0, category="supplements"),
    Product("h-009", "Sunscreen SPF 50", 4800.0, category="skincare"),
)

SEED_DIAGNOSTIC_TESTS = (
    DiagnosticTest("d-001", "Full Blood Count", 5000.0, sample="blood"),
    DiagnosticTest("d-002", "Malaria Test", 2500.0, sample="blood"),
    DiagnosticTest("d-003", "Lipid Profile", 8000.0, sample="blood"),
    DiagnosticTest("d-004", "Urinalysis", 3000.0, sample="urine"),
    DiagnosticTest("d-005", "COVID-19 PCR", 25000.0, sample="swab"),
    DiagnosticTest("d-006", "Chest X-Ray", 15000.0, sample="imaging"),
    DiagnosticTest("d-007", "Abdominal Ultrasound", 18000.0, sample="imaging"),
)


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)


def _page(items: list, page: int, page_size: int) -> Page:
    start = (page - 1) * page_size
    return Page(items=items[start : start + page_size], total=len(items))


class InMemoryAccountService:
    """Accounts with salted PBKDF2 password hashes."""

    def __init__(self) -> None:
        self._accounts: dict[str, tuple[Account, bytes, bytes]] = {}
        self._lock = threading.Lock()

    async def register(
        self, name: str, email: str, password: str, phone: str | None = None
    ) -> Account:
        """Create an account.

        Raises:
            AccountError: If the email is taken or the password too short.
        """
        email = email.lower()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AccountError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        salt = secrets.token_bytes(16)
        account = Account(user_id=str(uuid.uuid4()), name=name, email=email, phone=phone)
        with self._lock:
            if email in self._accounts:
                raise AccountError("An account with this email already exists")
            self._accounts[email] = (account, salt, _hash_password(password, salt))
        logger.info("Account registered (user_id=%s)", account.user_id)
        return account

    async def authenticate(self, email: str, password: str) -> Account:
        """Check credentials.

        Raises:
            AccountError: If the email is unknown or the password wrong.
        """
        with self._lock:
            entry = self._accounts.get(email.lower())
        if entry is None:
            raise AccountError("Invalid email or password")
        account, salt, digest = entry
        if not hmac.compare_digest(digest, _hash_password(password, salt)):
            raise AccountError("Invalid email or password")
        return account

    async def exists(self, email: str) -> bool:
        with self._lock:
            return email.lower() in self._accounts

    async def reset_password(self, email: str, new_password: str) -> None:
        """Replace an account's password.

        Raises:
            AccountError: If the account is unknown or the password too short.
        """
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise AccountError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        email = email.lower()
        salt = secrets.token_bytes(16)
        with self._lock:
            entry = self._accounts.get(email)
            if entry is None:
                raise AccountError("No account found for this email")
            self._accounts[email] = (entry[0], salt, _hash_password(new_password, salt))
        logger.info("Password reset (user_id=%s)", entry[0].user_id)


class InMemoryCatalogService:
    """Seeded product catalog and per-user carts."""

    def __init__(
        self,
        products: tuple[Product, ...] = SEED_PRODUCTS,
        healthcare_products: tuple[Product, ...] = SEED_HEALTHCARE_PRODUCTS,
        diagnostic_tests: tuple[DiagnosticTest, ...] = SEED_DIAGNOSTIC_TESTS,
    ) -> None:
        self._products = list(products)
        self._healthcare = list(healthcare_products)
        self._tests = list(diagnostic_tests)
        self._carts: dict[str, list[CartItem]] = {}
        self._lock = threading.Lock()

    async def search_products(self, query: str, page: int, page_size: int) -> Page[Product]:
        """Find products whose name matches the query.

        An empty query lists the whole catalog. Otherwise a product matches
        when any query word fuzzily matches any word of its name.
        """
        words = normalize_text(query).split()
        if not words:
            return _page(self._products, page, page_size)
        matches = [p for p in self._products if self._matches(words, p)]
        return _page(matches, page, page_size)

    async def healthcare_products(
        self, category: str | None, page: int, page_size: int
    ) -> Page[Product]:
        items = [p for p in self._healthcare if category is None or p.category == category]
        return _page(items, page, page_size)

    async def diagnostic_tests(self, page: int, page_size: int) -> Page[DiagnosticTest]:
        return _page(self._tests, page, page_size)

    async def get_product(self, product_id: str) -> Product | None:
        for product in (*self._products, *self._healthcare):
            if product.id == product_id:
                return product
        return None

    async def add_to_cart(self, user_id: str, product: Product, quantity: int) -> list[CartItem]:
        """Add a product, merging with an existing line for it.

        Raises:
            CatalogError: If the quantity is not positive.
        """
        if quantity < 1:
            raise CatalogError("Quantity must be at least 1")
        with self._lock:
            cart = [CartItem(**vars(item)) for item in self._carts.get(user_id, [])]
            for item in cart:
                if item.product_id == product.id:
                    item.quantity += quantity
                    break
            else:
                cart.append(CartItem(product.id, product.name, product.price, quantity))
            self._carts[user_id] = cart
            return list(cart)

    async def get_cart(self, user_id: str) -> list[CartItem]:
        with self._lock:
            return list(self._carts.get(user_id, []))

    async def remove_from_cart(self, user_id: str, position: int) -> CartItem:
        """Remove the line at a 1-based position.

        Raises:
            CatalogError: If the position is outside the cart.
        """
        with self._lock:
            cart = list(self._carts.get(user_id, []))
            if not 1 <= position <= len(cart):
                raise CatalogError(f"Invalid cart item. Choose 1-{len(cart)}")
            removed = cart.pop(position - 1)
            self._carts[user_id] = cart
            return removed

    async def clear_cart(self, user_id: str) -> None:
        with self._lock:
            self._carts.pop(user_id, None)

    @staticmethod
    def _matches(words: list[str], product: Product) -> bool:
        name_words = normalize_text(product.name).split()
        return any(
            fuzzy_match(word, name_word, SEARCH_THRESHOLD) > 0
            for word in words
            if len(word) >= 3
            for name_word in name_words
            if len(name_word) >= 3
        )


class LocalPaymentService:
    """Builds hosted payment links; no provider is contacted."""

    def __init__(self, base_url: str = "https://pay.example.com") -> None:
        self._base_url = base_url.rstrip("/")

    async def payment_link(self, order: Order, provider: str) -> str:
        return f"{self._base_url}/{provider}/{order.id}?amount={order.total:.2f}"


class LoggingEmailService:
    """Writes OTP emails to the log instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send_otp(self, email: str, code: str, purpose: str) -> None:
        self.sent.append((email, code, purpose))
        logger.info("OTP email (to=%s, purpose=%s)", email, purpose)


class InMemorySupportService:
    """Support tickets with message transcripts.

    Set ``available`` to False to simulate an unreachable support desk.
    """

    def __init__(self) -> None:
        self.available = True
        self.transcripts: dict[str, list[str]] = {}
        self._open: set[str] = set()

    async def start(self, user_id: str, sender_id: str) -> str:
        if not self.available:
            raise SupportUnavailableError("No support agents are available")
        ticket_id = f"T-{uuid.uuid4().hex[:8].upper()}"
        self.transcripts[ticket_id] = []
        self._open.add(ticket_id)
        logger.info("Support ticket opened (ticket=%s, user_id=%s)", ticket_id, user_id)
        return ticket_id

    async def forward(self, ticket_id: str, text: str) -> None:
        if not self.available or ticket_id not in self._open:
            raise SupportUnavailableError(f"Support ticket {ticket_id} is not open")
        self.transcripts[ticket_id].append(text)

    async def end(self, ticket_id: str) -> None:
        self._open.discard(ticket_id)
        logger.info("Support ticket closed (ticket=%s)", ticket_id)
