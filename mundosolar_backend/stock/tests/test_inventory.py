import json
from decimal import Decimal

import pytest

from django.core.exceptions import ValidationError

from main.factories import InventoryItemFactory, ProductFactory
from main.models import InventoryItem
from stock import inventory


@pytest.mark.django_db
class TestInventoryServices:
    def test_stock_by_product_includes_empty_products(self):
        panel = ProductFactory(name="Panel A")
        InventoryItemFactory(product=panel, quantity=4)
        InventoryItemFactory(product=panel, quantity=6)
        ProductFactory(name="Panel B")

        stock = {p.name: p.stock for p in inventory.stock_by_product()}

        assert stock == {"Panel A": 10, "Panel B": 0}

    def test_receive_stock_computes_total_cost(self):
        product = ProductFactory()
        item = inventory.receive_stock(product.pk, 3, unit_cost="100.50")
        assert item.total_cost == Decimal("301.50")

    def test_serial_number_is_one_unit(self):
        product = ProductFactory()
        with pytest.raises(ValidationError):
            inventory.receive_stock(product.pk, 2, serial_number="SN-1")

    def test_withdraw_oldest_batches_first(self):
        product = ProductFactory()
        old = InventoryItemFactory(product=product, quantity=3)
        new = InventoryItemFactory(product=product, quantity=5)

        remaining = inventory.withdraw_stock(product.pk, 4)

        assert remaining == 4
        assert InventoryItem.objects.get(pk=old.pk).quantity == 0
        assert InventoryItem.objects.get(pk=new.pk).quantity == 4

    def test_withdraw_more_than_available(self):
        product = ProductFactory()
        InventoryItemFactory(product=product, quantity=2)

        with pytest.raises(ValidationError) as exc:
            inventory.withdraw_stock(product.pk, 3)

        assert exc.value.messages == ["Stock insuficiente. Disponible: 2, Solicitado: 3"]

    def test_available_excludes_empty_and_inactive(self):
        InventoryItemFactory(quantity=0)
        InventoryItemFactory(product=ProductFactory(is_active=False))
        kept = InventoryItemFactory()
        assert list(inventory.available_inventory_qs()) == [kept]


@pytest.mark.django_db
class TestInventoryApi:
    def test_create_product(self, admin_client):
        response = admin_client.post(
            "/api/inventory/products/",
            data=json.dumps({"name": "Inversor 5kW", "unitPrice": "18500"}),
            content_type="application/json",
        )
        assert response.status_code == 201
        assert response.json()["data"]["unitPrice"] == 18500.0

    def test_list_products_has_stock(self, technician_client):
        InventoryItemFactory(quantity=7)
        body = technician_client.get("/api/inventory/products/").json()
        assert body["data"]["products"][0]["stock"] == 7

    def test_withdraw_endpoint(self, admin_client):
        item = InventoryItemFactory(quantity=2)
        response = admin_client.post(
            "/api/inventory/withdraw/",
            data=json.dumps({"productId": item.product_id, "quantity": 5}),
            content_type="application/json",
        )
        assert response.status_code == 400

    def test_technician_cannot_receive(self, technician_client):
        response = technician_client.post(
            "/api/inventory/items/",
            data=json.dumps({"productId": 1, "quantity": 1}),
            content_type="application/json",
        )
        assert response.status_code == 403
