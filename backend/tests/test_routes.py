# Overview: HTTP-level tests for the JSON API (context headers, status mapping, payload policies).

from conftest import put_stock, stock_qty, context_headers, CASHIER_ID


class TestRequestContext:

    def test_missing_headers_is_401(self, client, db_session, tenant_a, store_a):
        response = client.get("/api/inventory", headers={"store-id": str(store_a.id)})
        assert response.status_code == 401

    def test_malformed_tenant_header_is_401(self, client, db_session, store_a):
        response = client.get("/api/inventory", headers={"X-Tenant-Id": "1.5", "X-User-Id": "7"})
        assert response.status_code == 401

    def test_unknown_tenant_is_404(self, client, db_session):
        response = client.get("/api/inventory", headers={"X-Tenant-Id": "999", "X-User-Id": "7"})
        assert response.status_code == 404

    def test_store_required(self, client, db_session, tenant_a):
        response = client.get("/api/inventory", headers=context_headers(tenant_a))
        assert response.status_code == 400

    def test_store_from_query_arg(self, client, db_session, tenant_a, store_a, noodle):
        put_stock(noodle.base, store_a, 4)

        response = client.get(f"/api/inventory?store_id={store_a.id}", headers=context_headers(tenant_a))

        assert response.status_code == 200
        assert response.get_json()["items"][0]["stock_qty"] == "4"


class TestInventoryRoutes:

    def test_stock_in_created(self, client, db_session, tenant_a, store_a, noodle):
        response = client.post(
            "/api/inventory/stock-in",
            json={"variant_id": noodle.dozen.id, "qty": 2, "purchase_price": 36000},
            headers=context_headers(tenant_a, store_a),
        )

        assert response.status_code == 201
        data = response.get_json()
        assert data["stock"]["stock_qty"] == "24"
        assert data["price_updated"] is True

    def test_unknown_field_rejected(self, client, db_session, tenant_a, store_a, noodle):
        response = client.post(
            "/api/inventory/stock-in",
            json={"variant_id": noodle.base.id, "qty": 1, "purchase_price": 100, "price": 1},
            headers=context_headers(tenant_a, store_a),
        )
        assert response.status_code == 400

    def test_decimal_quantity_rejected(self, client, db_session, tenant_a, store_a, noodle):
        response = client.post(
            "/api/inventory/stock-in",
            json={"variant_id": noodle.base.id, "qty": 1.5, "purchase_price": 100},
            headers=context_headers(tenant_a, store_a),
        )
        assert response.status_code == 400
        assert stock_qty(noodle.base, store_a) is None

    def test_transfer_insufficient_is_409(self, client, db_session, tenant_a, store_a, store_a2, noodle):
        put_stock(noodle.base, store_a, 3)

        response = client.post(
            "/api/inventory/transfer",
            json={"from_store_id": store_a.id, "to_store_id": store_a2.id, "variant_id": noodle.base.id, "qty": 5},
            headers=context_headers(tenant_a),
        )

        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["available"] == "3"

    def test_opname_round_trip(self, client, db_session, tenant_a, store_a, noodle):
        put_stock(noodle.base, store_a, 10)
        headers = context_headers(tenant_a, store_a)

        created = client.post(
            "/api/inventory/opname",
            json={"auditor_name": "Budi", "items": [{"variant_id": noodle.base.id, "actual_qty": 7}]},
            headers=headers,
        )
        assert created.status_code == 201
        reference_id = created.get_json()["reference_id"]

        detail = client.get(f"/api/inventory/opname/{reference_id}", headers=headers)
        assert detail.status_code == 200
        assert detail.get_json()["items"][0]["qty_change"] == "-3"

        history = client.get("/api/inventory/opname/history", headers=headers)
        assert history.get_json()["items"][0]["reference_id"] == reference_id

    def test_sellable_endpoint(self, client, db_session, tenant_a, store_a, coffee, sugar, parcel):
        put_stock(coffee.base, store_a, 5)
        put_stock(sugar.base, store_a, 1)

        response = client.get(
            f"/api/inventory/variants/{parcel.variant.id}/sellable",
            headers=context_headers(tenant_a, store_a),
        )

        assert response.status_code == 200
        assert response.get_json()["sellable_qty"] == "1"

    def test_low_stock_pagination_shape(self, client, db_session, tenant_a, store_a, noodle):
        put_stock(noodle.base, store_a, 2)

        response = client.get("/api/inventory/low-stock?per_page=5", headers=context_headers(tenant_a, store_a))

        body = response.get_json()
        assert body["pagination"]["per_page"] == 5
        assert body["pagination"]["total"] == 1
        assert body["threshold"] == 10


class TestTransactionRoutes:

    def _post_sale(self, client, tenant, store, items, total, paid=None):
        return client.post(
            "/api/transactions",
            json={
                "items": items,
                "total_amount": total,
                "paid_amount": total if paid is None else paid,
                "payment_method": "CASH",
            },
            headers=context_headers(tenant, store),
        )

    def test_post_and_void(self, client, db_session, tenant_a, store_a, noodle, open_shift):
        put_stock(noodle.base, store_a, 30)

        posted = self._post_sale(client, tenant_a, store_a, [{"variant_id": noodle.dozen.id, "qty": 1}], 40000)
        assert posted.status_code == 201
        txn_id = posted.get_json()["transaction"]["id"]
        assert stock_qty(noodle.base, store_a) == 18

        voided = client.post(
            f"/api/transactions/{txn_id}/void",
            json={"reason": "customer cancelled"},
            headers=context_headers(tenant_a, store_a),
        )
        assert voided.status_code == 200
        assert voided.get_json()["transaction"]["payment_status"] == "VOID"
        assert stock_qty(noodle.base, store_a) == 30

        again = client.post(
            f"/api/transactions/{txn_id}/void",
            json={"reason": "customer cancelled"},
            headers=context_headers(tenant_a, store_a),
        )
        assert again.status_code == 409

    def test_total_mismatch_is_422(self, client, db_session, tenant_a, store_a, noodle, open_shift):
        put_stock(noodle.base, store_a, 5)

        response = self._post_sale(client, tenant_a, store_a, [{"variant_id": noodle.base.id, "qty": 2}], 7500)

        assert response.status_code == 422
        assert response.get_json()["details"]["server_total"] == 7000

    def test_receipt_and_debt_flow(self, client, db_session, tenant_a, store_a, voucher, open_shift):
        headers = context_headers(tenant_a, store_a)
        posted = self._post_sale(client, tenant_a, store_a, [{"variant_id": voucher.variant.id, "qty": 1}], 11000, 6000)
        txn_id = posted.get_json()["transaction"]["id"]

        receipt = client.get(f"/api/transactions/{txn_id}/receipt", headers=headers)
        assert receipt.get_json()["summary"]["balance_due"] == 5000

        debts = client.get("/api/transactions/debts", headers=headers)
        assert debts.get_json()["total_debt_amount"] == 5000

        paid = client.post(f"/api/transactions/{txn_id}/pay-debt", json={"amount": 5000}, headers=headers)
        assert paid.status_code == 200
        assert paid.get_json()["transaction"]["payment_status"] == "PAID"

    def test_other_tenant_gets_404(self, client, db_session, tenant_a, tenant_b, store_a, voucher, open_shift):
        posted = self._post_sale(client, tenant_a, store_a, [{"variant_id": voucher.variant.id, "qty": 1}], 11000)
        txn_id = posted.get_json()["transaction"]["id"]

        response = client.get(f"/api/transactions/{txn_id}", headers=context_headers(tenant_b))

        assert response.status_code == 404


class TestShiftAndCatalogRoutes:

    def test_open_current_close(self, client, db_session, tenant_a, store_a):
        headers = context_headers(tenant_a, store_a)

        opened = client.post("/api/shifts/open", json={"starting_cash": 50000}, headers=headers)
        assert opened.status_code == 201
        shift_id = opened.get_json()["shift"]["id"]

        current = client.get("/api/shifts/current", headers=headers)
        assert current.get_json()["shift"]["user_id"] == CASHIER_ID

        closed = client.post(f"/api/shifts/{shift_id}/close", json={"closing_cash": 50000}, headers=headers)
        assert closed.get_json()["shift"]["expected_cash"] == 50000

    def test_create_product_and_reparent_conflict(self, client, db_session, tenant_a):
        headers = context_headers(tenant_a)
        created = client.post(
            "/api/catalog/products",
            json={
                "name": "Telur",
                "variants": [
                    {"name": "Telur butir", "sku": "TLR-1"},
                    {"name": "Telur tray", "sku": "TLR-30", "multiplier": 30, "parent_sku": "TLR-1"},
                ],
            },
            headers=headers,
        )
        assert created.status_code == 201
        variants = {v["sku"]: v["id"] for v in created.get_json()["product"]["variants"]}

        response = client.put(
            f"/api/catalog/variants/{variants['TLR-1']}/parent",
            json={"parent_variant_id": variants["TLR-30"]},
            headers=headers,
        )
        assert response.status_code == 400

        duplicate = client.post(
            "/api/catalog/products",
            json={"name": "Telur lagi", "variants": [{"name": "Telur", "sku": "TLR-1"}]},
            headers=headers,
        )
        assert duplicate.status_code == 409


class TestHealth:

    def test_health_reports_ledger(self, client, db_session, tenant_a, store_a):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["stock_ledger"]["details"]["negative_rows"] == 0

    def test_unhealthy_check_is_503(self, client, db_session, monkeypatch):
        from kasir.routes import system

        monkeypatch.setattr(system, "check_stock_ledger_health", lambda: {"status": "unhealthy"})

        response = client.get("/health")

        assert response.status_code == 503
        assert response.get_json()["status"] == "unhealthy"
