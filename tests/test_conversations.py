"""Tests for grouping a user's messages into inbox conversations."""

import pytest

from tests.conftest import BUYER_ID, OTHER_BUYER_ID, PRODUCT_ID, SELLER_ID, sign_in_as
from zabibu_fresh.errors import RemoteFetchFailed, Unauthenticated
from zabibu_fresh.services.messages.conversations import aggregate_conversations


def message(message_id, sender, receiver, product, timestamp, content="hi"):
    return {
        "id": message_id,
        "senderId": sender,
        "receiverId": receiver,
        "productId": product,
        "content": content,
        "timestamp": f"2025-03-01T10:00:0{timestamp}+00:00",
    }


class TestAggregateConversations:
    """Pure grouping, no backend involved."""

    def test_groups_by_counterparty_and_product_newest_first(self):
        """U1 talks to U2 about A and to U3 about B; B is newer so it comes first."""
        messages = [
            message("m1", "U1", "U2", "productA", 1),
            message("m2", "U2", "U1", "productA", 2),
            message("m3", "U1", "U3", "productB", 3),
        ]

        summaries = aggregate_conversations(messages, "U1")

        assert [(s.counterparty_id, s.product_id) for s in summaries] == [
            ("U3", "productB"),
            ("U2", "productA"),
        ]
        assert summaries[0].last_message_id == "m3"
        assert summaries[1].last_message_id == "m2"
        assert summaries[1].message_count == 2

    def test_one_summary_per_pair_regardless_of_direction(self):
        messages = [
            message("m1", "U1", "U2", "productA", 1),
            message("m2", "U2", "U1", "productA", 2),
            message("m3", "U1", "U2", "productB", 3),
            message("m4", "U2", "U1", "productB", 4),
            message("m5", "U3", "U1", "productA", 5),
        ]

        summaries = aggregate_conversations(messages, "U1")

        keys = [s.key for s in summaries]
        assert len(keys) == len(set(keys)) == 3
        assert set(keys) == {("U2", "productA"), ("U2", "productB"), ("U3", "productA")}

    def test_latest_message_wins_regardless_of_input_order(self):
        messages = [
            message("m3", "U2", "U1", "productA", 3, content="latest"),
            message("m1", "U1", "U2", "productA", 1),
            message("m2", "U1", "U2", "productA", 2),
        ]

        summary = aggregate_conversations(messages, "U1")[0]

        assert summary.last_message == "latest"
        assert summary.last_sender_id == "U2"

    def test_equal_timestamps_pick_larger_id_deterministically(self):
        messages = [
            message("m-a", "U1", "U2", "productA", 5, content="first"),
            message("m-b", "U2", "U1", "productA", 5, content="second"),
        ]

        picks = {aggregate_conversations(order, "U1")[0].last_message_id
                 for order in (messages, list(reversed(messages)))}

        assert picks == {"m-b"}

    def test_skips_messages_not_involving_viewer(self):
        messages = [
            message("m1", "U1", "U2", "productA", 1),
            message("m2", "U2", "U3", "productA", 2),
        ]

        summaries = aggregate_conversations(messages, "U1")

        assert len(summaries) == 1
        assert summaries[0].counterparty_id == "U2"

    def test_empty_input_gives_empty_inbox(self):
        assert aggregate_conversations([], "U1") == []

    def test_uses_embedded_names_and_product(self):
        row = message("m1", "U2", "U1", "productA", 1)
        row["sender"] = {"id": "U2", "fullName": "Juma"}
        row["receiver"] = {"id": "U1", "fullName": "Asha"}
        row["product"] = {"id": "productA", "title": "Red Globe", "image": "https://img/1.jpg"}

        summary = aggregate_conversations([row], "U1")[0]

        assert summary.counterparty_name == "Juma"
        assert summary.product_title == "Red Globe"
        assert summary.product_image == "https://img/1.jpg"
        assert summary.unread_count is None


class TestConversationService:
    """Inbox loading through the message store."""

    @pytest.mark.asyncio
    async def test_lists_conversations_for_signed_in_user(self, app, client, marketplace):
        sign_in_as(app.context, marketplace.seller)
        client.seed_message("m1", BUYER_ID, SELLER_ID, PRODUCT_ID, "Is it fresh?", "2025-03-01T10:00:01+00:00")
        client.seed_message("m2", SELLER_ID, BUYER_ID, PRODUCT_ID, "Yes", "2025-03-01T10:00:02+00:00")
        client.seed_message("m3", OTHER_BUYER_ID, SELLER_ID, PRODUCT_ID, "Price?", "2025-03-01T10:00:03+00:00")

        summaries = await app.conversations.list_conversations()

        assert [s.counterparty_id for s in summaries] == [OTHER_BUYER_ID, BUYER_ID]
        assert summaries[0].counterparty_name == "Neema Mteja"
        assert summaries[1].last_message == "Yes"
        assert summaries[1].product_title == "Red Globe Grapes"

    @pytest.mark.asyncio
    async def test_fetch_failure_raises_instead_of_empty_inbox(self, app, client, marketplace):
        sign_in_as(app.context, marketplace.buyer)
        client.fail("Message", "select")

        with pytest.raises(RemoteFetchFailed) as exc_info:
            await app.conversations.list_conversations()

        assert exc_info.value.action == "load conversations"

    @pytest.mark.asyncio
    async def test_requires_sign_in(self, app, client):
        with pytest.raises(Unauthenticated):
            await app.conversations.list_conversations()

        assert client.calls == []

    @pytest.mark.asyncio
    async def test_inbox_is_always_the_signed_in_users(self, app, client, marketplace):
        sign_in_as(app.context, marketplace.buyer)
        client.seed_message("m1", OTHER_BUYER_ID, SELLER_ID, PRODUCT_ID, "Private", "2025-03-01T10:00:01+00:00")

        with pytest.raises(TypeError):
            await app.conversations.list_conversations(SELLER_ID)

        assert await app.conversations.list_conversations() == []
