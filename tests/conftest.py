"""Shared fixtures: an in-memory stand-in for the async Supabase client."""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from zabibu_fresh import config
from zabibu_fresh.main import ZabibuFresh
from zabibu_fresh.services.users.schemas import UserProfileResponse

SELLER_ID = "11111111-1111-1111-1111-111111111111"
BUYER_ID = "22222222-2222-2222-2222-222222222222"
OTHER_BUYER_ID = "33333333-3333-3333-3333-333333333333"
PRODUCT_ID = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"

# (table, embedded table or fk hint) -> local column holding the foreign key
EMBED_KEYS = {
    ("Product", "User"): "sellerId",
    ("Message", "Product"): "productId",
    ("Message", "Message_senderId_fkey"): "senderId",
    ("Message", "Message_receiverId_fkey"): "receiverId",
}


def now_iso():
    return datetime.now(timezone.utc).isoformat()


def split_top_level(expression):
    """Split on commas that are not inside parentheses"""
    parts, depth, current = [], 0, ""
    for char in expression:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        parts.append(current.strip())
    return parts


def parse_or_filter(expression):
    """PostgREST or=(...) syntax limited to eq and and(...) groups"""
    def term(text):
        if text.startswith("and(") and text.endswith(")"):
            inner = [term(part) for part in split_top_level(text[4:-1])]
            return lambda row: all(check(row) for check in inner)
        column, operator, value = text.split(".", 2)
        assert operator == "eq", f"unsupported operator {operator}"
        return lambda row: str(row.get(column)) == value

    checks = [term(part) for part in split_top_level(expression)]
    return lambda row: any(check(row) for check in checks)


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.operation = "select"
        self.columns = "*"
        self.count = None
        self.payload = None
        self.filters = []
        self.ordering = None
        self.row_limit = None

    def select(self, columns="*", count=None):
        self.columns = columns
        self.count = count
        return self

    def insert(self, row):
        self.operation, self.payload = "insert", row
        return self

    def update(self, values):
        self.operation, self.payload = "update", values
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: str(row.get(column)) == str(value))
        return self

    def or_(self, expression):
        self.filters.append(parse_or_filter(expression))
        return self

    def order(self, column, desc=False):
        self.ordering = (column, desc)
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    async def execute(self):
        self.client.calls.append((self.table, self.operation))
        error = self.client.failures.get((self.table, self.operation))
        if error is not None:
            raise error
        data = getattr(self, f"_{self.operation}")()
        return SimpleNamespace(data=data, count=len(data) if self.count else None)

    def _matching(self):
        rows = self.client.tables.setdefault(self.table, [])
        return [row for row in rows if all(check(row) for check in self.filters)]

    def _select(self):
        rows = self._matching()
        if self.ordering:
            column, desc = self.ordering
            rows = sorted(rows, key=lambda row: (str(row.get(column)), str(row.get("id"))), reverse=desc)
        if self.row_limit is not None:
            rows = rows[:self.row_limit]
        return [self._with_embeds(row) for row in rows]

    def _with_embeds(self, row):
        result = dict(row)
        for part in split_top_level(self.columns):
            if ":" not in part or "(" not in part:
                continue
            alias, target = part.split(":", 1)
            target = target.split("(", 1)[0]
            table, _, hint = target.partition("!")
            key = EMBED_KEYS[(self.table, hint or table)]
            result[alias.strip()] = self.client.find(table, row.get(key))
        return result

    def _insert(self):
        row = dict(self.payload)
        row.setdefault("id", str(uuid.uuid4()))
        if self.table == "Message":
            row.setdefault("timestamp", now_iso())
            if self.client.find("Product", row.get("productId")) is None:
                raise Exception('insert or update on table "Message" violates foreign key constraint')
        else:
            row.setdefault("createdAt", now_iso())
        self.client.tables.setdefault(self.table, []).append(row)
        self.client.broadcast(self.table, row)
        return [dict(row)]

    def _update(self):
        rows = self._matching()
        for row in rows:
            row.update(self.payload)
        return [dict(row) for row in rows]

    def _delete(self):
        rows = self._matching()
        self.client.tables[self.table] = [row for row in self.client.tables[self.table] if row not in rows]
        if self.table == "Product":
            deleted = {row["id"] for row in rows}
            self.client.tables["Message"] = [
                message for message in self.client.tables.get("Message", [])
                if message.get("productId") not in deleted
            ]
        return [dict(row) for row in rows]


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    async def upload(self, path, file, file_options=None):
        if self.storage.fail_upload:
            raise Exception("upload failed")
        self.storage.objects[(self.name, path)] = file
        return SimpleNamespace(path=path)

    async def get_public_url(self, path):
        return f"https://project.supabase.co/storage/v1/object/public/{self.name}/{path}"

    async def remove(self, paths):
        for path in paths:
            self.storage.objects.pop((self.name, path), None)
            self.storage.removed.append(path)
        return []


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.removed = []
        self.fail_upload = False

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeAuth:
    def __init__(self, client):
        self.client = client
        self.session = None
        self.users = {}
        self.calls = []
        self.confirm_phone = True
        self.fail = {}
        self.listeners = []

    def _check(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    async def sign_up(self, credentials):
        self._check("sign_up")
        user = SimpleNamespace(
            id=str(uuid.uuid4()),
            phone=credentials["phone"],
            user_metadata=dict(credentials.get("options", {}).get("data", {})),
            phone_confirmed_at=None,
        )
        self.users[credentials["phone"]] = (user, credentials["password"])
        if self.client.profile_trigger:
            metadata = user.user_metadata
            self.client.tables.setdefault("User", []).append({
                "id": user.id, "fullName": metadata["full_name"], "phone": metadata["phone"],
                "role": metadata["role"], "createdAt": now_iso(),
            })
        session = None if self.confirm_phone else SimpleNamespace(user=user)
        return SimpleNamespace(user=user, session=session)

    async def sign_in_with_password(self, credentials):
        self._check("sign_in_with_password")
        user, password = self.users.get(credentials.get("phone") or credentials.get("email"), (None, None))
        if user is None or password != credentials["password"]:
            raise Exception("Invalid login credentials")
        self.session = SimpleNamespace(user=user)
        self.emit("SIGNED_IN", self.session)
        return SimpleNamespace(user=user, session=self.session)

    async def sign_in_with_otp(self, credentials):
        self._check("sign_in_with_otp")

    async def verify_otp(self, params):
        self._check("verify_otp")
        user, _ = self.users.get(params["phone"], (None, None))
        if user is None:
            raise Exception("Token has expired or is invalid")
        user.phone_confirmed_at = now_iso()
        self.session = SimpleNamespace(user=user)
        return SimpleNamespace(user=user, session=self.session)

    async def sign_out(self):
        self._check("sign_out")
        self.session = None
        self.emit("SIGNED_OUT", None)

    async def get_session(self):
        self._check("get_session")
        return self.session

    async def reset_password_for_email(self, email, options=None):
        self._check("reset_password_for_email")

    async def update_user(self, attributes):
        self._check("update_user")
        user = self.session.user if self.session else None
        return SimpleNamespace(user=user)

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        return SimpleNamespace(unsubscribe=lambda: self.listeners.remove(callback))

    def emit(self, event, session):
        for callback in list(self.listeners):
            callback(event, session)


class FakeChannel:
    def __init__(self, client, name):
        self.client = client
        self.name = name
        self.bindings = []
        self.subscribed = False
        self.fail_subscribe = False

    def on_postgres_changes(self, event, callback, table="*", schema="public", filter=None):
        self.bindings.append((event, table, filter, callback))
        return self

    async def subscribe(self):
        if self.fail_subscribe or self.client.fail_subscribe:
            raise Exception("channel error")
        self.subscribed = True
        return self

    def deliver(self, table, row):
        for event, bound_table, row_filter, callback in self.bindings:
            if event not in ("INSERT", "*") or bound_table != table:
                continue
            if row_filter:
                column, value = row_filter.split("=eq.", 1)
                if str(row.get(column)) != value:
                    continue
            callback({"data": {"type": "INSERT", "table": table, "schema": "public", "record": dict(row)}})


class FakeSupabaseClient:
    def __init__(self):
        self.tables = {"User": [], "Product": [], "Message": []}
        self.calls = []
        self.failures = {}
        self.auth = FakeAuth(self)
        self.storage = FakeStorage()
        self.channels = []
        self.removed_channels = []
        self.profile_trigger = True
        self.fail_subscribe = False

    def table(self, name):
        return FakeQuery(self, name)

    def fail(self, table, operation, error=None):
        self.failures[(table, operation)] = error or Exception(f"{operation} on {table} failed")

    def find(self, table, row_id):
        for row in self.tables.get(table, []):
            if str(row.get("id")) == str(row_id):
                return dict(row)
        return None

    def channel(self, name):
        channel = FakeChannel(self, name)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel):
        channel.subscribed = False
        self.removed_channels.append(channel)

    def broadcast(self, table, row):
        for channel in self.channels:
            if channel.subscribed:
                channel.deliver(table, row)

    def seed_user(self, user_id, full_name, phone, role):
        row = {"id": user_id, "fullName": full_name, "phone": phone, "role": role, "createdAt": now_iso()}
        self.tables["User"].append(row)
        return row

    def seed_product(self, product_id, seller_id, title="Red Globe Grapes", **fields):
        row = {
            "id": product_id, "title": title, "description": "Sweet table grapes",
            "image": f"https://project.supabase.co/storage/v1/object/public/product-images/{seller_id}/grapes.jpg",
            "price": 120, "quantity": 50, "location": "Dodoma", "sellerId": seller_id, "createdAt": now_iso(),
        }
        row.update(fields)
        self.tables["Product"].append(row)
        return row

    def seed_message(self, message_id, sender_id, receiver_id, product_id, content, timestamp):
        row = {
            "id": message_id, "senderId": sender_id, "receiverId": receiver_id,
            "productId": product_id, "content": content, "timestamp": timestamp,
        }
        self.tables["Message"].append(row)
        return row


def sign_in_as(context, user_row):
    """Put the context in the resolved, signed-in state for user_row"""
    user = SimpleNamespace(id=user_row["id"], phone=user_row["phone"], user_metadata={"role": user_row["role"]},
                           phone_confirmed_at=now_iso())
    context.session = SimpleNamespace(user=user)
    context.current_user = user
    context.current_profile = UserProfileResponse.model_validate(user_row)
    context.profile_error = None
    context.resolved = True
    return user


@pytest.fixture(autouse=True)
def no_profile_wait(monkeypatch):
    monkeypatch.setattr(config, "PROFILE_TRIGGER_WAIT_SECONDS", 0)


@pytest.fixture
def client():
    return FakeSupabaseClient()


@pytest.fixture
def marketplace(client):
    """Seller with one listing and two buyers"""
    seller = client.seed_user(SELLER_ID, "Asha Mkulima", "+255700000001", "seller")
    buyer = client.seed_user(BUYER_ID, "Juma Mnunuzi", "+255700000002", "buyer")
    other = client.seed_user(OTHER_BUYER_ID, "Neema Mteja", "+255700000003", "buyer")
    product = client.seed_product(PRODUCT_ID, SELLER_ID)
    return SimpleNamespace(seller=seller, buyer=buyer, other=other, product=product)


@pytest.fixture
def app(client):
    return ZabibuFresh(client)
