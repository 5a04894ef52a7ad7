from datetime import timedelta

import pytest

from shopfest.errors import ConflictError, NotFoundError, ValidationError
from shopfest.helpers import today
from shopfest.model import catalog, orders
from shopfest.model.db import Event

from conftest import build_event


def event_payload(**kw):
    d = today()
    data = {
        "name_en": "Summer Promo",
        "name_vi": "Khuyến mãi hè",
        "start_date": (d - timedelta(days=2)).isoformat(),
        "end_date": (d + timedelta(days=2)).isoformat(),
    }
    data.update(kw)
    return data


class TestEventRules:
    def test_active_inclusive_range(self):
        d = today()
        ev = build_event(days_before=0, days_after=0)
        ev.end_date = d + timedelta(days=1)
        assert catalog.is_active(ev, on=d)
        assert catalog.is_active(ev, on=ev.end_date)
        assert not catalog.is_active(ev, on=ev.end_date + timedelta(days=1))
        assert not catalog.is_active(ev, on=d - timedelta(days=1))

    def test_disabled_event_is_inactive(self):
        assert not catalog.is_active(build_event(status=False))

    def test_expired_type_does_not_accept_orders(self):
        ev = build_event(type="expired")
        assert catalog.is_active(ev)
        assert not catalog.accepts_orders(ev)
        assert catalog.accepts_orders(build_event())

    def test_event_to_dict(self):
        d = catalog.event_to_dict(build_event())
        assert d["id"] == "EVT_SPRING"
        assert d["active"] is True
        assert d["name"]["vi"] == "Khuyến mãi mùa xuân"
        assert d["startDate"].count("-") == 2


class TestEvents:
    async def test_create_event_defaults(self, db):
        ev = await catalog.create_event(db, event_payload())
        assert ev.id.startswith("EVT")
        assert ev.type == "simple_packages"
        assert ev.status is True
        assert ev.name == {"en": "Summer Promo", "vi": "Khuyến mãi hè"}
        assert ev.description is None

    async def test_create_accepts_day_first_dates(self, db):
        ev = await catalog.create_event(db, event_payload(
            start_date="01-03-2025", end_date="31-03-2025",
        ))
        assert ev.start_date.isoformat() == "2025-03-01"
        assert ev.end_date.isoformat() == "2025-03-31"

    async def test_both_names_required(self, db):
        with pytest.raises(ValidationError) as exc:
            await catalog.create_event(db, event_payload(name_vi=""))
        assert exc.value.field == "name"

    async def test_start_must_precede_end(self, db):
        d = today().isoformat()
        with pytest.raises(ValidationError):
            await catalog.create_event(db, event_payload(start_date=d,
                                                         end_date=d))

    async def test_bad_date_and_type(self, db):
        with pytest.raises(ValidationError):
            await catalog.create_event(db, event_payload(start_date="soon"))
        with pytest.raises(ValidationError):
            await catalog.create_event(db, event_payload(type="mega"))

    async def test_list_events_newest_first(self, db):
        old = await catalog.create_event(db, event_payload(
            start_date="2024-01-01", end_date="2024-02-01"))
        new = await catalog.create_event(db, event_payload())
        listed = await catalog.list_events(db)
        assert [e.id for e in listed] == [new.id, old.id]
        active = await catalog.list_active_events(db)
        assert [e.id for e in active] == [new.id]

    async def test_update_is_partial(self, db):
        ev = await catalog.create_event(db, event_payload())
        await catalog.update_event(db, ev.id, {"type": "flash_sale",
                                               "status": False})
        got = await catalog.get_event(db, ev.id)
        assert got.type == "flash_sale"
        assert got.status is False
        assert got.name["en"] == "Summer Promo"

    async def test_update_rejects_inverted_range(self, db):
        ev = await catalog.create_event(db, event_payload())
        with pytest.raises(ValidationError):
            await catalog.update_event(db, ev.id, {
                "end_date": (ev.start_date - timedelta(days=1)).isoformat()
            })

    async def test_get_missing(self, db):
        with pytest.raises(NotFoundError):
            await catalog.get_event(db, "NOPE")

    async def test_delete_event(self, db):
        ev = await catalog.create_event(db, event_payload())
        await catalog.delete_event(db, ev.id)
        assert await db.get(Event, ev.id) is None

    async def test_delete_event_with_orders_conflicts(self, db, shop):
        await orders.create_order(db, {
            "customer_id": shop.id, "event_id": "EVT_SPRING",
            "products": [{"product_id": "PACK_3", "quantity": 1}],
        })
        with pytest.raises(ConflictError):
            await catalog.delete_event(db, "EVT_SPRING")


class TestProducts:
    async def test_create_with_defaults(self, db):
        p = await catalog.create_product(db, {
            "id": "PACK_7", "name_en": "Pack 7", "name_vi": "Gói 7",
            "description_en": "Seven", "description_vi": "Bảy",
        })
        assert p.image == catalog.DEFAULT_PRODUCT_IMAGE
        assert p.ai_hint == catalog.DEFAULT_PRODUCT_HINT

    async def test_duplicate_id_conflicts(self, db, catalog_rows):
        with pytest.raises(ConflictError):
            await catalog.create_product(db, {
                "id": "PACK_3", "name": "Dup", "description": "Dup",
            })

    async def test_generated_id(self, db):
        p = await catalog.create_product(db, {
            "name": {"en": "Bundle", "vi": "Combo"},
            "description": {"en": "b", "vi": "c"},
        })
        assert p.id.startswith("PROD")

    async def test_search_is_localized(self, db, catalog_rows):
        products = await catalog.list_products(db)
        found = catalog.search_products(products, "gói", "vi")
        assert {p.id for p in found} == {"PACK_3", "PACK_5"}
        assert catalog.search_products(products, "gói", "en") == []
        assert len(catalog.search_products(products, "  ", "en")) == 3
        assert [p.id for p in
                catalog.search_products(products, "TELEVISION", "en")] == \
            ["TV_55"]

    async def test_update_product(self, db, catalog_rows):
        await catalog.update_product(db, "PACK_3", {
            "name_en": "Pack Three", "name_vi": "Gói Ba",
            "image": "https://example.com/p3.png",
        })
        p = await catalog.get_product(db, "PACK_3")
        assert p.name["en"] == "Pack Three"
        assert p.image == "https://example.com/p3.png"
        assert p.description["en"] == "Three units"

    async def test_update_product_needs_both_languages(self, db,
                                                      catalog_rows):
        with pytest.raises(ValidationError, match="name"):
            await catalog.update_product(db, "PACK_3", {"name_en": "Three"})
        with pytest.raises(ValidationError, match="description"):
            await catalog.update_product(db, "PACK_3", {
                "description_vi": "Ba", "description_en": "",
            })
        p = await catalog.get_product(db, "PACK_3")
        assert p.name == {"en": "Pack 3", "vi": "Gói 3"}

    async def test_delete_referenced_product_conflicts(self, db, shop):
        await orders.create_order(db, {
            "customer_id": shop.id, "event_id": "EVT_SPRING",
            "products": [{"product_id": "PACK_5", "quantity": 2}],
        })
        with pytest.raises(ConflictError):
            await catalog.delete_product(db, "PACK_5")
        await catalog.delete_product(db, "TV_55")
        with pytest.raises(NotFoundError):
            await catalog.get_product(db, "TV_55")
