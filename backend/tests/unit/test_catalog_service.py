"""
Unit Tests for the Item Catalog Service
"""
import pytest
from decimal import Decimal

from cycleledger.exceptions import NotFoundError, ValidationError
from cycleledger.services.catalog_service import (
    NewVariant,
    create_item,
    get_variant,
    get_variant_info,
    list_items,
)
from cycleledger.services.inventory_service import BalanceKey, post_movement

from tests.factories import ORG_ID, OTHER_ORG_ID, create_test_item


class TestCreateItem:

    def test_default_variant_created_from_item(self, db_session):
        item = create_item(
            db_session,
            ORG_ID,
            name="  Basil Seed ",
            item_type="RAW_MATERIAL",
            sku="BAS-001",
            default_purchase_unit_cost=Decimal("0.125"),
            default_sale_price=Decimal("1.5"),
        )
        db_session.commit()

        assert item.name == "Basil Seed"
        assert len(item.variants) == 1
        variant = item.variants[0]
        assert variant.label == "Default"
        assert variant.sku == "BAS-001"
        assert variant.unit_cost == Decimal("0.125")
        assert variant.selling_price == Decimal("1.5")

    def test_explicit_variants(self, db_session):
        item = create_item(
            db_session,
            ORG_ID,
            name="Planter",
            item_type="FINISHED_GOODS",
            variants=[NewVariant("Small", "PL-S", Decimal("2")), NewVariant("Large", "PL-L", Decimal("5"))],
        )
        db_session.commit()

        assert [v.label for v in item.variants] == ["Small", "Large"]

    def test_invalid_type_rejected(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            create_item(db_session, ORG_ID, name="Thing", item_type="SERVICE")
        assert exc_info.value.details["field"] == "item_type"

    def test_blank_name_rejected(self, db_session):
        with pytest.raises(ValidationError):
            create_item(db_session, ORG_ID, name="   ", item_type="RAW_MATERIAL")

    def test_negative_default_cost_rejected(self, db_session):
        with pytest.raises(ValidationError):
            create_item(
                db_session, ORG_ID, name="Thing", item_type="RAW_MATERIAL",
                default_purchase_unit_cost=Decimal("-0.01"),
            )


class TestGetVariant:

    def test_variant_info(self, db_session):
        item = create_test_item(db_session, name="Mulch", item_type="WORK_IN_PROGRESS", unit_cost=Decimal("3.25"))
        info = get_variant_info(db_session, item.variants[0].id, ORG_ID)

        assert info.item_id == item.id
        assert info.item_type == "WORK_IN_PROGRESS"
        assert info.default_unit_cost == Decimal("3.25")

    def test_other_organization_not_found(self, db_session):
        item = create_test_item(db_session, organization_id=OTHER_ORG_ID)
        with pytest.raises(NotFoundError):
            get_variant(db_session, item.variants[0].id, ORG_ID)


class TestListItems:

    def test_filters_by_type(self, db_session):
        create_test_item(db_session, name="Seed", item_type="RAW_MATERIAL")
        create_test_item(db_session, name="Crate", item_type="FINISHED_GOODS")
        create_test_item(db_session, name="Foreign", organization_id=OTHER_ORG_ID)
        db_session.commit()

        rows = list_items(db_session, ORG_ID, item_type="FINISHED_GOODS")
        assert [item.name for item, _ in rows] == ["Crate"]
        assert len(list_items(db_session, ORG_ID)) == 2

    def test_inactive_hidden_by_default(self, db_session):
        create_test_item(db_session, name="Old", is_active=False)
        db_session.commit()

        assert list_items(db_session, ORG_ID) == []
        assert len(list_items(db_session, ORG_ID, include_inactive=True)) == 1

    def test_enriched_with_balances(self, db_session, project, cycle):
        item = create_test_item(db_session, name="Seed")
        variant = item.variants[0]
        post_movement(
            db_session, BalanceKey(ORG_ID, project.id, cycle.id, variant.id), 7, Decimal("2"), "PURCHASE_RECEIPT"
        )
        db_session.commit()

        rows = list_items(db_session, ORG_ID, project_id=project.id, cycle_id=cycle.id)
        (listed, balances), = rows
        assert listed.id == item.id
        assert balances[variant.id].quantity_on_hand == 7

    def test_project_and_cycle_required_together(self, db_session, project):
        with pytest.raises(ValidationError):
            list_items(db_session, ORG_ID, project_id=project.id)
