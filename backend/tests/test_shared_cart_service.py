"""
Tests for the shared cart engine: merge identity, totals, publishing.
"""

import json
from unittest.mock import MagicMock

import pytest
import redis
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from rest_api.models import Base, SharedCartItem
from rest_api.repositories import shared_cart as shared_cart_repository
from rest_api.services.domain import SharedCartService
from shared.config.constants import Limits
from shared.utils.exceptions import CartNotFoundError, ValidationError
from shared.utils.schemas import AddCartItemRequest


@pytest.fixture
def publisher():
    client = MagicMock(spec=redis.Redis)
    client.publish.return_value = 1
    return client


@pytest.fixture
def cart_service(db_session, publisher):
    return SharedCartService(db_session, publisher)


def add_request(product_id="p1", quantity=1, unit_price=10000, options=None, **extra):
    return AddCartItemRequest(
        product_id=product_id,
        quantity=quantity,
        unit_price=unit_price,
        options=options or [],
        **extra,
    )


def published_payloads(publisher) -> list[tuple[str, dict]]:
    return [(c.args[0], json.loads(c.args[1])) for c in publisher.publish.call_args_list]


class TestGetOrCreateCart:
    def test_creates_empty_cart_once(self, cart_service):
        first = cart_service.get_or_create_cart("4")
        second = cart_service.get_or_create_cart("4")

        assert first.id == second.id
        assert first.table_id == "4"
        assert first.items == []
        assert first.total_items == 0
        assert first.total_amount == 0

    def test_reads_do_not_publish(self, cart_service, publisher):
        cart_service.get_or_create_cart("4")
        publisher.publish.assert_not_called()


class TestAddItem:
    def test_requires_existing_cart(self, cart_service):
        with pytest.raises(CartNotFoundError):
            cart_service.add_item("4", add_request())

    def test_same_selection_in_any_option_order_merges(self, cart_service):
        cart_service.get_or_create_cart("4")
        size = {"id": "size-l", "name": "Large", "additionalPrice": 1500}
        milk = {"id": "milk-oat", "name": "Oat", "additionalPrice": 500}

        cart_service.add_item("4", add_request(quantity=2, unit_price=12000, options=[size, milk]))
        cart = cart_service.add_item("4", add_request(quantity=3, unit_price=12000, options=[milk, size]))

        assert len(cart.items) == 1
        assert cart.items[0].id == "p1::milk-oat:500|size-l:1500"
        assert cart.items[0].quantity == 5
        assert cart.total_items == 5
        assert cart.total_amount == 60000

    def test_different_options_are_separate_lines(self, cart_service):
        cart_service.get_or_create_cart("4")
        cart_service.add_item("4", add_request(quantity=1, unit_price=100, options=["Hot"]))
        cart = cart_service.add_item("4", add_request(quantity=2, unit_price=120, options=["Iced"]))

        assert sorted(i.id for i in cart.items) == ["p1::Hot:0", "p1::Iced:0"]
        assert cart.total_items == 3
        assert cart.total_amount == 340

    def test_base_unit_price_defaults_to_unit_price(self, cart_service):
        cart_service.get_or_create_cart("4")
        cart = cart_service.add_item("4", add_request(unit_price=99.5))

        assert cart.items[0].base_unit_price == 99.5
        assert cart.items[0].options_subtotal == 0

    def test_snapshots_prices_and_options(self, cart_service):
        cart_service.get_or_create_cart("4")
        cart = cart_service.add_item(
            "4",
            add_request(
                unit_price=13500,
                base_unit_price=12000,
                options_subtotal=1500,
                options='[{"id": 3, "name": "Extra shot", "additionalPrice": 1500}]',
            ),
        )

        item = cart.items[0]
        assert item.base_unit_price == 12000
        assert item.options_subtotal == 1500
        assert item.options == [{"id": 3, "name": "Extra shot", "additionalPrice": 1500}]

    def test_carts_of_different_tables_are_isolated(self, cart_service):
        cart_service.get_or_create_cart("4")
        cart_service.get_or_create_cart("7")

        cart_service.add_item("4", add_request(quantity=2))
        cart_7 = cart_service.add_item("7", add_request(quantity=1))

        assert cart_7.total_items == 1
        assert cart_service.get_or_create_cart("4").total_items == 2

    def test_merged_quantity_is_capped(self, cart_service):
        cart_service.get_or_create_cart("4")

        cart_service.add_item("4", add_request(quantity=60, unit_price=100))
        cart = cart_service.add_item("4", add_request(quantity=60, unit_price=100))

        assert cart.items[0].quantity == 99
        assert cart.total_items == 99
        assert cart.total_amount == 9900

    def test_overlong_option_selection_is_rejected(self, cart_service, db_session, publisher):
        cart_service.get_or_create_cart("4")
        options = [{"name": f"{i}" + "x" * 100, "additionalPrice": 1} for i in range(10)]

        with pytest.raises(ValidationError) as exc_info:
            cart_service.add_item("4", add_request(options=options))

        assert exc_info.value.detail["code"] == "INVALID_ITEM"
        assert db_session.scalars(select(SharedCartItem)).all() == []
        publisher.publish.assert_not_called()

    def test_longest_storable_line_id_is_accepted(self, cart_service):
        cart_service.get_or_create_cart("4")
        # "p1::" + name + ":0" fills the column exactly
        name = "n" * (Limits.MAX_ITEM_ID_LENGTH - len("p1::") - len(":0"))

        cart = cart_service.add_item("4", add_request(options=[name]))

        assert len(cart.items[0].id) == Limits.MAX_ITEM_ID_LENGTH


class TestConcurrentAdds:
    @pytest.fixture
    def sessions(self, tmp_path):
        """Two sessions on separate connections to one file database."""
        file_engine = create_engine(f"sqlite:///{tmp_path / 'carts.db'}")
        Base.metadata.create_all(bind=file_engine)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
        first, second = factory(), factory()
        try:
            yield first, second
        finally:
            first.close()
            second.close()
            file_engine.dispose()

    def test_interleaved_adds_of_one_selection_both_count(self, sessions, monkeypatch):
        session_a, session_b = sessions
        service_a = SharedCartService(session_a, None)
        service_b = SharedCartService(session_b, None)
        service_a.get_or_create_cart("4")

        write_a = service_a._repo.upsert_item

        def write_after_other_request(*args, **kwargs):
            # Request B commits between A's cart read and A's insert
            service_b.add_item("4", add_request(quantity=3, unit_price=500))
            return write_a(*args, **kwargs)

        monkeypatch.setattr(service_a._repo, "upsert_item", write_after_other_request)

        cart = service_a.add_item("4", add_request(quantity=2, unit_price=500))

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5
        assert cart.total_items == 5
        assert cart.total_amount == 2500
        assert service_b.get_or_create_cart("4").total_items == 5

    def test_row_lock_fallback_merges_and_caps(self, cart_service, monkeypatch):
        monkeypatch.setattr(shared_cart_repository, "_dialect_insert", lambda name: None)
        cart_service.get_or_create_cart("4")

        cart_service.add_item("4", add_request(quantity=2, unit_price=100, options=["Hot"]))
        cart = cart_service.add_item("4", add_request(quantity=3, unit_price=100, options=["Hot"]))
        assert cart.items[0].quantity == 5
        assert cart.total_amount == 500

        cart = cart_service.add_item("4", add_request(quantity=99, unit_price=100, options=["Hot"]))
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 99
        assert cart.total_items == 99


class TestQuantityAndRemoval:
    def test_update_sets_absolute_quantity(self, cart_service):
        cart_service.get_or_create_cart("4")
        cart = cart_service.add_item("4", add_request(quantity=4, unit_price=250))

        cart = cart_service.update_item_quantity("4", cart.items[0].id, 2)

        assert cart.items[0].quantity == 2
        assert cart.total_items == 2
        assert cart.total_amount == 500

    def test_zero_quantity_removes_line(self, cart_service, db_session):
        cart_service.get_or_create_cart("4")
        cart = cart_service.add_item("4", add_request())

        cart = cart_service.update_item_quantity("4", cart.items[0].id, 0)

        assert cart.items == []
        assert cart.total_items == 0
        assert db_session.query(SharedCartItem).count() == 0

    def test_negative_quantity_removes_line(self, cart_service):
        cart_service.get_or_create_cart("4")
        cart = cart_service.add_item("4", add_request())
        cart = cart_service.update_item_quantity("4", cart.items[0].id, -3)
        assert cart.items == []

    def test_remove_missing_line_succeeds(self, cart_service):
        cart_service.get_or_create_cart("4")
        cart_service.add_item("4", add_request(quantity=2, unit_price=50))

        cart = cart_service.remove_item("4", "does-not-exist")

        assert cart.total_items == 2
        assert cart.total_amount == 100

    def test_clear_keeps_the_cart(self, cart_service):
        created = cart_service.get_or_create_cart("4")
        cart_service.add_item("4", add_request(product_id="p1"))
        cart_service.add_item("4", add_request(product_id="p2"))

        cart = cart_service.clear_cart("4")

        assert cart.id == created.id
        assert cart.items == []
        assert cart.total_items == 0
        assert cart.total_amount == 0

    def test_mutations_require_existing_cart(self, cart_service):
        with pytest.raises(CartNotFoundError):
            cart_service.update_item_quantity("4", "p1", 3)
        with pytest.raises(CartNotFoundError):
            cart_service.remove_item("4", "p1")
        with pytest.raises(CartNotFoundError):
            cart_service.clear_cart("4")


class TestTotalsInvariant:
    def test_totals_match_items_after_every_mutation(self, cart_service):
        cart_service.get_or_create_cart("4")
        steps = [
            lambda: cart_service.add_item("4", add_request("a", 2, 1000)),
            lambda: cart_service.add_item("4", add_request("b", 1, 2500.5)),
            lambda: cart_service.add_item("4", add_request("a", 3, 1000)),
            lambda: cart_service.update_item_quantity("4", "b", 4),
            lambda: cart_service.remove_item("4", "a"),
            lambda: cart_service.add_item("4", add_request("c", 1, 10)),
        ]
        for step in steps:
            cart = step()
            assert cart.total_items == sum(i.quantity for i in cart.items)
            assert cart.total_amount == pytest.approx(
                sum(i.unit_price * i.quantity for i in cart.items)
            )


class TestPublishing:
    def test_every_mutation_publishes_full_snapshot(self, cart_service, publisher):
        cart_service.get_or_create_cart("4")
        cart_service.add_item("4", add_request("p1", 2, 500))
        cart = cart_service.add_item("4", add_request("p2", 1, 700))

        payloads = published_payloads(publisher)
        assert len(payloads) == 2
        channel, payload = payloads[-1]
        assert channel == "cart:4"
        assert payload["tableId"] == "4"
        assert payload["cart"]["totalItems"] == 3
        assert payload["cart"]["totalAmount"] == 1700
        assert {i["productId"] for i in payload["cart"]["items"]} == {"p1", "p2"}
        assert payload["cart"]["id"] == cart.id

    def test_clear_and_remove_publish(self, cart_service, publisher):
        cart_service.get_or_create_cart("4")
        cart_service.add_item("4", add_request())
        cart_service.remove_item("4", "p1")
        cart_service.clear_cart("4")

        assert len(published_payloads(publisher)) == 3
        assert published_payloads(publisher)[-1][1]["cart"]["items"] == []

    def test_publish_failure_does_not_fail_write(self, db_session, publisher):
        publisher.publish.side_effect = redis.ConnectionError("bus down")
        service = SharedCartService(db_session, publisher)
        service.get_or_create_cart("4")

        cart = service.add_item("4", add_request(quantity=2))

        assert cart.total_items == 2
        assert service.get_or_create_cart("4").total_items == 2

    def test_works_without_a_bus(self, db_session):
        service = SharedCartService(db_session, None)
        service.get_or_create_cart("4")
        assert service.add_item("4", add_request()).total_items == 1

    def test_subscriber_receives_snapshot(self, db_session, fake_redis_sync):
        pubsub = fake_redis_sync.pubsub()
        pubsub.subscribe("cart:4")
        pubsub.get_message(timeout=1.0)

        service = SharedCartService(db_session, fake_redis_sync)
        service.get_or_create_cart("4")
        service.add_item("4", add_request(quantity=3))

        message = pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
        assert message is not None
        assert message["channel"] == "cart:4"
        payload = json.loads(message["data"])
        assert payload["cart"]["totalItems"] == 3
        pubsub.close()
