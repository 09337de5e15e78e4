from datetime import timedelta
from decimal import Decimal

import factory

from django.contrib.auth import get_user_model
from django.utils import timezone

from growatt.models import GrowattDataCache
from maintenance.models import MaintenanceRecord, MaintenanceTechnician

from .models import (
    Client,
    InventoryItem,
    Order,
    OrderStatus,
    Payment,
    PaymentStatus,
    Product,
    SolarSystem,
    UserRole,
)

User = get_user_model()


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.Sequence(lambda n: f"user{n}@mundosolar.test")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    full_name = factory.Faker("name", locale="es_MX")
    phone = factory.Sequence(lambda n: f"55{n:08d}")
    role = UserRole.SUPPORT
    is_active = True

    class Params:
        inactive = factory.Trait(is_active=False)


class AdminFactory(UserFactory):
    role = UserRole.ADMIN
    is_staff = True


class TechnicianFactory(UserFactory):
    role = UserRole.TECHNICIAN
    department = "Servicio"


class ClientFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Client

    first_name = factory.Faker("first_name", locale="es_MX")
    last_name = factory.Faker("last_name", locale="es_MX")
    email = factory.Sequence(lambda n: f"cliente{n}@example.mx")
    phone = factory.Sequence(lambda n: f"33{n:08d}")
    city = "Guadalajara"
    state = "Jalisco"
    is_active = True

    class Params:
        with_growatt = factory.Trait(
            growatt_username=factory.Sequence(lambda n: f"growatt{n}"),
            growatt_password="growatt-pass",
        )


class SolarSystemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = SolarSystem

    client = factory.SubFactory(ClientFactory)
    name = factory.Sequence(lambda n: f"Sistema {n}")
    capacity_kw = Decimal("5.50")
    estimated_generation = Decimal("22.00")


class ProductFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Product

    name = factory.Sequence(lambda n: f"Panel {n}")
    brand = "Canadian Solar"
    category = "Paneles"
    capacity = "550W"
    unit_price = Decimal("4200.00")


class InventoryItemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = InventoryItem

    product = factory.SubFactory(ProductFactory)
    quantity = 10
    unit_cost = Decimal("3100.00")
    location = "Almacén Central"


class OrderFactory(factory.django.DjangoModelFactory):
    """An order whose ledger snapshot starts unpaid."""

    class Meta:
        model = Order

    order_number = factory.Sequence(lambda n: f"MS-250101-{n:04d}")
    client = factory.SubFactory(ClientFactory)
    status = OrderStatus.CONFIRMED
    subtotal = Decimal("10000.00")
    tax_rate = Decimal("0.0000")
    total = factory.LazyAttribute(lambda o: o.subtotal)
    amount_paid = Decimal("0.00")
    balance_due = factory.LazyAttribute(lambda o: o.total - o.amount_paid)
    payment_status = PaymentStatus.PENDING


class PaymentFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Payment

    order = factory.SubFactory(OrderFactory)
    amount = Decimal("1000.00")
    payment_date = factory.LazyFunction(timezone.now)


class MaintenanceFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = MaintenanceRecord

    client = factory.SubFactory(ClientFactory)
    type = MaintenanceRecord.Type.PREVENTIVE
    status = MaintenanceRecord.Status.SCHEDULED
    title = factory.Sequence(lambda n: f"Limpieza de paneles {n}")
    scheduled_date = factory.LazyFunction(lambda: timezone.now() + timedelta(days=3))

    @factory.post_generation
    def technicians(self, create, extracted, **kwargs):
        if not create or not extracted:
            return
        for index, tech in enumerate(extracted):
            MaintenanceTechnician.objects.create(
                maintenance=self,
                technician=tech,
                role=(
                    MaintenanceTechnician.Role.LEAD
                    if index == 0
                    else MaintenanceTechnician.Role.ASSISTANT
                ),
            )


class GrowattCacheFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = GrowattDataCache

    client = factory.SubFactory(ClientFactory, with_growatt=True)
    plant_id = factory.Sequence(lambda n: f"PLANT-{n}")
    plant_name = "Casa"
    daily_generation = Decimal("18.500")
    monthly_generation = Decimal("420.000")
    total_generation = Decimal("12800.000")
    co2_reduction = Decimal("9.100")
    status = "online"
    cached_at = factory.LazyFunction(timezone.now)
    expires_at = factory.LazyAttribute(lambda o: o.cached_at + timedelta(hours=24))
    is_stale = False
