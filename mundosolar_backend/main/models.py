import re
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.contrib.auth.hashers import check_password, make_password
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

ZERO = Decimal("0.00")


def _qmoney(x: Decimal) -> Decimal:
    return (x or Decimal("0.00")).quantize(ZERO, rounding=ROUND_HALF_UP)


def phone_last10(phone) -> str:
    """Digits-only tail used to match a typed phone against stored ones."""
    return re.sub(r"\D", "", phone or "")[-10:]


class UserRole(models.TextChoices):
    ADMIN = "admin", _("Admin")
    MANAGER = "manager", _("Manager")
    TECHNICIAN = "technician", _("Technician")
    SALES = "sales", _("Sales")
    SUPPORT = "support", _("Support")


class User(AbstractUser):
    full_name = models.CharField(max_length=120, blank=True)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=30, blank=True, null=True)
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.SUPPORT,
        help_text="Exactly one application role per staff account",
    )
    employee_id = models.CharField(max_length=30, blank=True, null=True)
    department = models.CharField(max_length=80, blank=True, null=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["username", "full_name"]

    class Meta:
        indexes = [models.Index(fields=["role", "is_active"])]

    def __str__(self):
        return self.full_name or self.email or self.username

    @property
    def display_name(self):
        return self.full_name or self.get_full_name() or self.email

    @property
    def is_technician(self):
        return self.role == UserRole.TECHNICIAN

    def save(self, *args, **kwargs):
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)


class Client(models.Model):
    first_name = models.CharField(max_length=80)
    last_name = models.CharField(max_length=80, blank=True)
    email = models.EmailField(blank=True, null=True)
    phone = models.CharField(max_length=30, blank=True, null=True)
    address = models.CharField(max_length=255, blank=True)
    neighborhood = models.CharField(max_length=120, blank=True)
    city = models.CharField(max_length=120, blank=True)
    state = models.CharField(max_length=120, blank=True)
    postal_code = models.CharField(max_length=10, blank=True)
    rfc = models.CharField(max_length=13, blank=True, help_text="Mexican tax id")
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    # Client portal credentials (hashed with Django's password hashers)
    password = models.CharField(max_length=128, blank=True)
    require_password_change = models.BooleanField(default=True)

    # Growatt monitoring account used by the nightly sync
    growatt_username = models.CharField(max_length=120, blank=True, null=True)
    growatt_password = models.CharField(max_length=120, blank=True, null=True)
    expected_daily_generation = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["last_name", "first_name"]
        indexes = [
            models.Index(fields=["is_active"]),
            models.Index(fields=["phone"]),
        ]

    def __str__(self):
        return self.full_name

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def has_growatt_credentials(self):
        return bool(self.growatt_username and self.growatt_password)

    def set_password(self, raw_password):
        self.password = make_password(raw_password)

    def check_password(self, raw_password):
        if not self.password:
            return False
        return check_password(raw_password, self.password)


class SolarSystem(models.Model):
    client = models.ForeignKey(
        Client, on_delete=models.CASCADE, related_name="solar_systems"
    )
    name = models.CharField(max_length=120)
    capacity_kw = models.DecimalField(
        max_digits=8, decimal_places=2, validators=[MinValueValidator(0)]
    )
    installation_date = models.DateField(null=True, blank=True)
    estimated_generation = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["client_id", "name"]

    def __str__(self):
        return f"{self.name} ({self.capacity_kw} kW)"


class Product(models.Model):
    name = models.CharField(max_length=150)
    brand = models.CharField(max_length=80, blank=True)
    model = models.CharField(max_length=80, blank=True)
    category = models.CharField(max_length=80, blank=True)
    capacity = models.CharField(max_length=40, blank=True)
    description = models.TextField(blank=True)
    unit_price = models.DecimalField(
        max_digits=12, decimal_places=2, default=ZERO, validators=[MinValueValidator(0)]
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return " ".join(p for p in (self.brand, self.name, self.model) if p)


class InventoryItem(models.Model):
    product = models.ForeignKey(
        Product, on_delete=models.PROTECT, related_name="inventory_items"
    )
    quantity = models.PositiveIntegerField(default=0)
    serial_number = models.CharField(max_length=120, blank=True, null=True)
    location = models.CharField(max_length=120, blank=True)
    supplier = models.CharField(max_length=120, blank=True)
    invoice_number = models.CharField(max_length=60, blank=True)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total_cost = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    purchase_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["product", "quantity"])]

    def __str__(self):
        return f"{self.product} x{self.quantity}"

    def save(self, *args, **kwargs):
        self.total_cost = _qmoney(Decimal(self.quantity or 0) * (self.unit_cost or ZERO))
        super().save(*args, **kwargs)


class OrderStatus(models.TextChoices):
    DRAFT = "DRAFT", _("Draft")
    PENDING = "PENDING", _("Pending")
    CONFIRMED = "CONFIRMED", _("Confirmed")
    IN_PROGRESS = "IN_PROGRESS", _("In progress")
    SHIPPED = "SHIPPED", _("Shipped")
    DELIVERED = "DELIVERED", _("Delivered")
    COMPLETED = "COMPLETED", _("Completed")
    CANCELLED = "CANCELLED", _("Cancelled")


class OrderType(models.TextChoices):
    SALE = "SALE", _("Sale")
    INSTALLATION = "INSTALLATION", _("Installation")
    MAINTENANCE = "MAINTENANCE", _("Maintenance")
    SERVICE = "SERVICE", _("Service")
    WARRANTY = "WARRANTY", _("Warranty")


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", _("Pending")
    PARTIAL = "PARTIAL", _("Partial")
    PAID = "PAID", _("Paid")


class OrderQuerySet(models.QuerySet):
    def with_balance(self):
        return self.filter(balance_due__gt=0).exclude(status=OrderStatus.CANCELLED)


class Order(models.Model):
    order_number = models.CharField(max_length=20, unique=True)
    client = models.ForeignKey(Client, on_delete=models.PROTECT, related_name="orders")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders_created",
    )
    status = models.CharField(
        max_length=20, choices=OrderStatus.choices, default=OrderStatus.DRAFT
    )
    order_type = models.CharField(
        max_length=20, choices=OrderType.choices, default=OrderType.SALE
    )
    order_date = models.DateTimeField(auto_now_add=True)
    required_date = models.DateField(null=True, blank=True)
    shipped_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)

    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    tax_rate = models.DecimalField(
        max_digits=5, decimal_places=4, default=Decimal("0.1600")
    )
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    shipping_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)

    # Payment ledger snapshot. Only orders.ledger writes these three.
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    balance_due = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    payment_status = models.CharField(
        max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.PENDING
    )

    deposit_required = models.BooleanField(default=False)
    deposit_amount = models.DecimalField(
        max_digits=14, decimal_places=2, null=True, blank=True
    )
    deposit_due_date = models.DateField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ["-order_date"]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["payment_status"]),
            models.Index(fields=["client", "order_date"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_paid__gte=0),
                name="order_amount_paid_not_negative",
            ),
        ]

    def __str__(self):
        return self.order_number


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        Product, on_delete=models.PROTECT, null=True, blank=True, related_name="+"
    )
    description = models.CharField(max_length=255, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    line_total = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)

    def __str__(self):
        return f"{self.description or self.product} x{self.quantity}"

    def save(self, *args, **kwargs):
        self.line_total = _qmoney(
            Decimal(self.quantity) * (self.unit_price or ZERO) - (self.discount or ZERO)
        )
        super().save(*args, **kwargs)


class PaymentType(models.TextChoices):
    DEPOSIT = "DEPOSIT", _("Deposit")
    PARTIAL = "PARTIAL", _("Partial")
    INSTALLMENT = "INSTALLMENT", _("Installment")
    FINAL = "FINAL", _("Final")
    FULL = "FULL", _("Full")


class PaymentMethod(models.TextChoices):
    CASH = "CASH", _("Cash")
    TRANSFER = "TRANSFER", _("Bank transfer")
    CARD = "CARD", _("Card")
    CHECK = "CHECK", _("Check")
    OTHER = "OTHER", _("Other")


class Payment(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    payment_type = models.CharField(
        max_length=15, choices=PaymentType.choices, default=PaymentType.PARTIAL
    )
    payment_method = models.CharField(
        max_length=15, choices=PaymentMethod.choices, default=PaymentMethod.CASH
    )
    payment_date = models.DateTimeField()
    due_date = models.DateField(null=True, blank=True)
    installment_number = models.PositiveIntegerField(null=True, blank=True)
    reference_number = models.CharField(max_length=80, blank=True)
    notes = models.TextField(blank=True)
    receipt_url = models.URLField(max_length=500, blank=True)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments_received",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-payment_date"]
        indexes = [models.Index(fields=["order", "payment_date"])]

    def __str__(self):
        return f"{self.order_id}: {self.amount}"
