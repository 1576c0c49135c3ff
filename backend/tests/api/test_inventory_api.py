"""
Tests for inventory ledger and catalog endpoints.
"""
import pytest
from decimal import Decimal

from cycleledger.models import InventoryTransaction

from tests.factories import create_test_cycle, create_test_variant, lock_cycle

MOVEMENTS = "/api/v1/inventory/movements"
BALANCES = "/api/v1/inventory/balances"
OPENING = "/api/v1/inventory/opening-balance"
CARRY_FORWARD = "/api/v1/inventory/carry-forward"
ITEMS = "/api/v1/inventory-items"


@pytest.fixture
def variant(db_session):
    variant = create_test_variant(db_session, name="Compost")
    db_session.commit()
    return variant


def _movement(project, cycle, variant, delta, unit_cost=None, transaction_type="PURCHASE_RECEIPT"):
    payload = {
        "project_id": project.id,
        "cycle_id": cycle.id,
        "variant_id": variant.id,
        "transaction_type": transaction_type,
        "quantity_delta": delta,
    }
    if unit_cost is not None:
        payload["unit_cost"] = unit_cost
    return payload


class TestPostMovement:
    """Tests for POST /api/v1/inventory/movements"""

    @pytest.mark.api
    def test_receipts_update_moving_average(self, client, admin_headers, project, cycle, variant):
        first = client.post(MOVEMENTS, json=_movement(project, cycle, variant, 10, "2.00"), headers=admin_headers)
        second = client.post(MOVEMENTS, json=_movement(project, cycle, variant, 10, "4.00"), headers=admin_headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.json()["inventory_item_id"] == variant.inventory_item_id

        response = client.get(
            BALANCES,
            params={"project_id": project.id, "cycle_id": cycle.id},
            headers=admin_headers,
        )
        assert response.status_code == 200
        [balance] = response.json()
        assert balance["quantity_on_hand"] == 20
        assert Decimal(balance["avg_unit_cost"]) == Decimal("3.00")

    @pytest.mark.api
    def test_system_types_rejected(self, client, admin_headers, project, cycle, variant):
        response = client.post(
            MOVEMENTS,
            json=_movement(project, cycle, variant, -1, transaction_type="PRODUCTION_ISSUE"),
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "transaction_type"

    @pytest.mark.api
    def test_unknown_source_type_rejected(self, client, db_session, admin_headers, project, cycle, variant):
        payload = _movement(project, cycle, variant, 5, "1.00")
        payload.update(source_type="bogus_kind", source_id=1)
        response = client.post(MOVEMENTS, json=payload, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["details"]["errors"][0]["field"] == "source_type"
        assert db_session.query(InventoryTransaction).count() == 0

    @pytest.mark.api
    @pytest.mark.parametrize("source_type", ["production_order", "opening_balance", "carry_forward"])
    def test_system_source_types_rejected(
        self, client, db_session, admin_headers, project, cycle, variant, source_type
    ):
        payload = _movement(project, cycle, variant, 5, "1.00")
        payload.update(source_type=source_type, source_id=999)
        response = client.post(MOVEMENTS, json=payload, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "source_type"
        assert db_session.query(InventoryTransaction).count() == 0

    @pytest.mark.api
    def test_expense_source_recorded(self, client, admin_headers, project, cycle, variant):
        payload = _movement(project, cycle, variant, 5, "1.00")
        payload.update(source_type="expense", source_id=42)
        response = client.post(MOVEMENTS, json=payload, headers=admin_headers)

        assert response.status_code == 201
        assert response.json()["source_type"] == "expense"
        assert response.json()["source_id"] == 42

    @pytest.mark.api
    def test_zero_delta_rejected(self, client, admin_headers, project, cycle, variant):
        response = client.post(MOVEMENTS, json=_movement(project, cycle, variant, 0), headers=admin_headers)
        assert response.status_code == 400

    @pytest.mark.api
    def test_locked_cycle_conflict(self, client, admin_headers, project, locked_cycle, variant):
        response = client.post(
            MOVEMENTS, json=_movement(project, locked_cycle, variant, 5, "1.00"), headers=admin_headers
        )

        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "CYCLE_INVENTORY_LOCKED"
        assert data["message"].startswith("This cycle is locked because inventory was carried forward")

    @pytest.mark.api
    def test_unknown_cycle_not_found(self, client, admin_headers, project, cycle, variant):
        payload = _movement(project, cycle, variant, 5)
        payload["cycle_id"] = cycle.id + 1000
        response = client.post(MOVEMENTS, json=payload, headers=admin_headers)

        assert response.status_code == 404

    @pytest.mark.api
    def test_member_without_project_forbidden(self, client, member_headers, project, cycle, variant):
        response = client.post(MOVEMENTS, json=_movement(project, cycle, variant, 5), headers=member_headers)
        assert response.status_code == 403


class TestListMovements:
    """Tests for GET /api/v1/inventory/movements"""

    @pytest.fixture
    def three_movements(self, client, admin_headers, project, cycle, variant):
        for delta, unit_cost, transaction_type in ((5, "1.00", "PURCHASE_RECEIPT"),
                                                   (3, "1.00", "PURCHASE_RECEIPT"),
                                                   (-2, None, "SALE_ISSUE")):
            response = client.post(
                MOVEMENTS,
                json=_movement(project, cycle, variant, delta, unit_cost, transaction_type),
                headers=admin_headers,
            )
            assert response.status_code == 201

    @pytest.mark.api
    def test_most_recent_first_with_item_details(self, client, admin_headers, three_movements, variant):
        response = client.get(MOVEMENTS, headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert [m["quantity_delta"] for m in data] == [-2, 3, 5]
        assert data[0]["item_name"] == "Compost"
        assert data[0]["variant_label"] == "Default"
        assert data[0]["item_type"] == "RAW_MATERIAL"

    @pytest.mark.api
    def test_ascending_order(self, client, admin_headers, three_movements):
        data = client.get(MOVEMENTS, params={"order": "asc"}, headers=admin_headers).json()
        assert [m["quantity_delta"] for m in data] == [5, 3, -2]

    @pytest.mark.api
    @pytest.mark.parametrize("limit", [0, -10, 1])
    def test_limit_is_clamped_to_at_least_one(self, client, admin_headers, three_movements, limit):
        data = client.get(MOVEMENTS, params={"limit": limit}, headers=admin_headers).json()
        assert len(data) == 1

    @pytest.mark.api
    def test_large_limit_returns_everything(self, client, admin_headers, three_movements):
        data = client.get(MOVEMENTS, params={"limit": 1_000_000}, headers=admin_headers).json()
        assert len(data) == 3

    @pytest.mark.api
    def test_filter_by_type(self, client, admin_headers, three_movements):
        data = client.get(MOVEMENTS, params={"transaction_type": "SALE_ISSUE"}, headers=admin_headers).json()
        assert [m["quantity_delta"] for m in data] == [-2]

    @pytest.mark.api
    def test_project_requires_cycle(self, client, admin_headers, project):
        response = client.get(MOVEMENTS, params={"project_id": project.id}, headers=admin_headers)
        assert response.status_code == 400

    @pytest.mark.api
    def test_member_must_scope_to_project(self, client, assigned_member, member_headers, project, cycle, three_movements):
        assert client.get(MOVEMENTS, headers=member_headers).status_code == 403

        response = client.get(
            MOVEMENTS, params={"project_id": project.id, "cycle_id": cycle.id}, headers=member_headers
        )
        assert response.status_code == 200
        assert len(response.json()) == 3


class TestReverseMovement:
    """Tests for POST /api/v1/inventory/movements/{id}/reverse"""

    @pytest.mark.api
    def test_reverse_receipt(self, client, admin_headers, project, cycle, variant):
        original = client.post(
            MOVEMENTS, json=_movement(project, cycle, variant, 10, "2.00"), headers=admin_headers
        ).json()

        response = client.post(
            f"{MOVEMENTS}/{original['id']}/reverse", json={"notes": "Keyed twice"}, headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["transaction_type"] == "REVERSAL"
        assert data["quantity_delta"] == -10
        assert data["source_type"] == "inventory_transaction"
        assert data["source_id"] == original["id"]

        [balance] = client.get(
            BALANCES, params={"project_id": project.id, "cycle_id": cycle.id}, headers=admin_headers
        ).json()
        assert balance["quantity_on_hand"] == 0

    @pytest.mark.api
    def test_reverse_twice_rejected(self, client, admin_headers, project, cycle, variant):
        original = client.post(
            MOVEMENTS, json=_movement(project, cycle, variant, 10, "2.00"), headers=admin_headers
        ).json()
        client.post(f"{MOVEMENTS}/{original['id']}/reverse", headers=admin_headers)

        response = client.post(f"{MOVEMENTS}/{original['id']}/reverse", headers=admin_headers)

        assert response.status_code == 422
        assert response.json()["error"] == "INVALID_STATE"

    @pytest.mark.api
    def test_reverse_in_locked_cycle(self, client, db_session, admin_headers, admin_user, project, cycle, variant):
        original = client.post(
            MOVEMENTS, json=_movement(project, cycle, variant, 10, "2.00"), headers=admin_headers
        ).json()
        lock_cycle(db_session, cycle, locked_by=admin_user)
        db_session.commit()

        response = client.post(f"{MOVEMENTS}/{original['id']}/reverse", headers=admin_headers)
        assert response.status_code == 409

    @pytest.mark.api
    def test_reverse_unknown_movement(self, client, admin_headers):
        response = client.post(f"{MOVEMENTS}/99999/reverse", headers=admin_headers)
        assert response.status_code == 404


class TestBalancesAndOpeningBalance:

    @pytest.mark.api
    def test_single_variant_balance_defaults_to_zero(self, client, admin_headers, project, cycle, variant):
        response = client.get(
            BALANCES,
            params={"project_id": project.id, "cycle_id": cycle.id, "variant_id": variant.id},
            headers=admin_headers,
        )

        assert response.status_code == 200
        [balance] = response.json()
        assert balance["quantity_on_hand"] == 0
        assert balance["avg_unit_cost"] is None

    @pytest.mark.api
    def test_balances_require_cycle(self, client, admin_headers, project):
        response = client.get(BALANCES, params={"project_id": project.id}, headers=admin_headers)
        assert response.status_code == 400

    @pytest.mark.api
    def test_opening_balance_sets_and_resets(self, client, admin_headers, project, cycle, variant):
        body = {
            "project_id": project.id,
            "cycle_id": cycle.id,
            "lines": [{"variant_id": variant.id, "quantity_on_hand": 12, "unit_cost": "1.50"}],
        }
        response = client.post(OPENING, json=body, headers=admin_headers)

        assert response.status_code == 200
        [balance] = response.json()
        assert balance["quantity_on_hand"] == 12
        assert Decimal(balance["avg_unit_cost"]) == Decimal("1.50")

        body["lines"][0]["quantity_on_hand"] = 8
        [balance] = client.post(OPENING, json=body, headers=admin_headers).json()
        assert balance["quantity_on_hand"] == 8

        deltas = client.get(
            MOVEMENTS, params={"transaction_type": "OPENING_BALANCE", "order": "asc"}, headers=admin_headers
        ).json()
        assert [m["quantity_delta"] for m in deltas] == [12, -4]

    @pytest.mark.api
    def test_opening_balance_duplicate_variant_rejected(self, client, admin_headers, project, cycle, variant):
        line = {"variant_id": variant.id, "quantity_on_hand": 1}
        response = client.post(
            OPENING,
            json={"project_id": project.id, "cycle_id": cycle.id, "lines": [line, line]},
            headers=admin_headers,
        )
        assert response.status_code == 400

    @pytest.mark.api
    def test_opening_balance_requires_lines(self, client, admin_headers, project, cycle):
        response = client.post(
            OPENING, json={"project_id": project.id, "cycle_id": cycle.id, "lines": []}, headers=admin_headers
        )
        assert response.status_code == 400

    @pytest.mark.api
    def test_opening_balance_locked_cycle(self, client, admin_headers, project, locked_cycle, variant):
        response = client.post(
            OPENING,
            json={
                "project_id": project.id,
                "cycle_id": locked_cycle.id,
                "lines": [{"variant_id": variant.id, "quantity_on_hand": 3}],
            },
            headers=admin_headers,
        )
        assert response.status_code == 409


class TestCarryForward:
    """Tests for POST /api/v1/inventory/carry-forward"""

    @pytest.fixture
    def next_cycle(self, db_session, project):
        cycle = create_test_cycle(db_session, project, name="2026 Q2")
        db_session.commit()
        return cycle

    def _body(self, project, from_cycle, to_cycle):
        return {"project_id": project.id, "from_cycle_id": from_cycle.id, "to_cycle_id": to_cycle.id}

    @pytest.mark.api
    def test_opens_next_cycle_and_locks_previous(self, client, admin_headers, project, cycle, next_cycle, variant):
        client.post(MOVEMENTS, json=_movement(project, cycle, variant, 10, "2.00"), headers=admin_headers)

        response = client.post(CARRY_FORWARD, json=self._body(project, cycle, next_cycle), headers=admin_headers)

        assert response.status_code == 200
        [balance] = response.json()
        assert balance["cycle_id"] == next_cycle.id
        assert balance["quantity_on_hand"] == 10
        assert Decimal(balance["avg_unit_cost"]) == Decimal("2.00")

        late = client.post(MOVEMENTS, json=_movement(project, cycle, variant, 1, "2.00"), headers=admin_headers)
        assert late.status_code == 409
        assert late.json()["error"] == "CYCLE_INVENTORY_LOCKED"

    @pytest.mark.api
    def test_repeat_posts_nothing(self, client, admin_headers, project, cycle, next_cycle, variant):
        client.post(MOVEMENTS, json=_movement(project, cycle, variant, 10, "2.00"), headers=admin_headers)
        body = self._body(project, cycle, next_cycle)

        assert client.post(CARRY_FORWARD, json=body, headers=admin_headers).status_code == 200
        again = client.post(CARRY_FORWARD, json=body, headers=admin_headers)

        assert again.status_code == 200
        assert again.json()[0]["quantity_on_hand"] == 10
        openings = client.get(
            MOVEMENTS, params={"transaction_type": "OPENING_BALANCE"}, headers=admin_headers
        ).json()
        assert len(openings) == 1
        assert openings[0]["source_type"] == "carry_forward"
        assert openings[0]["source_id"] == cycle.id

    @pytest.mark.api
    def test_unassigned_member_forbidden(self, client, member_headers, project, cycle, next_cycle):
        response = client.post(CARRY_FORWARD, json=self._body(project, cycle, next_cycle), headers=member_headers)
        assert response.status_code == 403

    @pytest.mark.api
    def test_unknown_cycle_not_found(self, client, admin_headers, project, cycle):
        body = {"project_id": project.id, "from_cycle_id": cycle.id, "to_cycle_id": cycle.id + 1000}
        response = client.post(CARRY_FORWARD, json=body, headers=admin_headers)
        assert response.status_code == 404

    @pytest.mark.api
    def test_same_cycle_rejected(self, client, admin_headers, project, cycle):
        response = client.post(CARRY_FORWARD, json=self._body(project, cycle, cycle), headers=admin_headers)
        assert response.status_code == 400


class TestInventoryItems:
    """Tests for /api/v1/inventory-items"""

    @pytest.mark.api
    def test_create_item_gets_default_variant(self, client, admin_headers):
        response = client.post(
            ITEMS,
            json={"name": "  Perlite ", "item_type": "RAW_MATERIAL", "default_purchase_unit_cost": "0.75"},
            headers=admin_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Perlite"
        assert [v["label"] for v in data["variants"]] == ["Default"]

    @pytest.mark.api
    def test_create_item_bad_type(self, client, admin_headers):
        response = client.post(ITEMS, json={"name": "Perlite", "item_type": "SERVICE"}, headers=admin_headers)
        assert response.status_code == 400

    @pytest.mark.api
    def test_list_with_cycle_balances(self, client, admin_headers, project, cycle, variant):
        client.post(MOVEMENTS, json=_movement(project, cycle, variant, 4, "2.00"), headers=admin_headers)

        response = client.get(
            ITEMS, params={"project_id": project.id, "cycle_id": cycle.id}, headers=admin_headers
        )

        assert response.status_code == 200
        [item] = response.json()
        balance = item["variants"][0]["balance"]
        assert balance["quantity_on_hand"] == 4
        assert Decimal(balance["avg_unit_cost"]) == Decimal("2.00")

    @pytest.mark.api
    def test_list_without_cycle_has_no_balances(self, client, admin_headers, variant):
        [item] = client.get(ITEMS, headers=admin_headers).json()
        assert item["variants"][0]["balance"] is None

    @pytest.mark.api
    def test_variant_from_other_org_not_found(self, client, db_session, admin_headers):
        foreign = create_test_variant(db_session, name="Foreign", organization_id=2)
        db_session.commit()

        response = client.get(f"{ITEMS}/variants/{foreign.id}", headers=admin_headers)
        assert response.status_code == 404
