"""Tests for the JSON credential store and the TestUser model."""

import json

import pytest
from pydantic import ValidationError

from apisec.models.credentials import TestUser
from apisec.storage.credentials import CredentialStore


class TestTestUser:
    """Identity rules of a stored account."""

    def test_requires_email_or_username(self):
        with pytest.raises(ValidationError):
            TestUser(password="x")

    def test_identity_prefers_email(self):
        u = TestUser(username="alice", email="alice@example.com", password="x")
        assert u.identity == "alice@example.com"

    def test_identity_falls_back_to_username(self):
        assert TestUser(username="bob", password="x").identity == "bob"

    def test_matches_on_email_or_username(self):
        a = TestUser(username="alice", email="a@example.com", password="x")
        assert a.matches(TestUser(email="a@example.com", password="y"))
        assert a.matches(TestUser(username="alice", password="y"))
        assert not a.matches(TestUser(username="bob", email="b@example.com", password="x"))

    def test_missing_fields_never_match(self):
        a = TestUser(email="a@example.com", password="x")
        b = TestUser(username="a", password="x")
        assert not a.matches(b)


class TestLoad:
    """load() never raises."""

    def test_missing_file_is_empty(self, tmp_path):
        assert CredentialStore(tmp_path / "nope.json").load() == []

    def test_corrupt_json_is_empty(self, tmp_path):
        path = tmp_path / "users.json"
        path.write_text("{not json", encoding="utf-8")
        assert CredentialStore(path).load() == []

    def test_wrong_shape_is_empty(self, tmp_path):
        path = tmp_path / "users.json"
        path.write_text(json.dumps([{"email": "a@example.com", "password": "x"}]), encoding="utf-8")
        assert CredentialStore(path).load() == []

    def test_malformed_entries_are_skipped(self, tmp_path):
        path = tmp_path / "users.json"
        path.write_text(json.dumps({"users": [
            {"email": "ok@example.com", "password": "x"},
            {"password": "no-identity"},
            {"email": "no-password@example.com"},
            "garbage",
        ]}), encoding="utf-8")
        users = CredentialStore(path).load()
        assert [u.email for u in users] == ["ok@example.com"]


class TestSave:
    """save() appends once and keeps the fixture shape."""

    def test_save_is_idempotent(self, store, users_file):
        user = TestUser(username="alice", email="alice@example.com", password="x")
        assert store.save(user) is True
        assert store.save(user) is False
        doc = json.loads(users_file.read_text(encoding="utf-8"))
        assert len(doc["users"]) == 1

    def test_duplicate_username_not_appended(self, store):
        store.save(TestUser(username="alice", email="a1@example.com", password="x"))
        store.save(TestUser(username="alice", email="a2@example.com", password="x"))
        assert len(store.load()) == 1

    def test_writes_pretty_users_document(self, store, users_file):
        store.save(TestUser(email="a@example.com", password="x"))
        text = users_file.read_text(encoding="utf-8")
        assert text.startswith('{\n  "users": [')
        assert json.loads(text) == {"users": [{"email": "a@example.com", "password": "x"}]}

    def test_creates_parent_directory(self, tmp_path):
        store = CredentialStore(tmp_path / "nested" / "users.json")
        store.save(TestUser(email="a@example.com", password="x"))
        assert (tmp_path / "nested" / "users.json").exists()

    def test_keeps_extra_keys_and_unparsed_entries(self, tmp_path):
        path = tmp_path / "users.json"
        seed = {"email": "seed@example.com", "password": "pw", "role": "admin"}
        path.write_text(json.dumps({"users": [seed, {"username": "legacy"}]}), encoding="utf-8")
        store = CredentialStore(path)

        assert store.save(TestUser(email="new@example.com", password="pw")) is True
        doc = json.loads(path.read_text(encoding="utf-8"))
        assert doc["users"] == [
            seed,
            {"username": "legacy"},
            {"email": "new@example.com", "password": "pw"},
        ]

    def test_duplicate_of_unparsed_entry_not_appended(self, tmp_path):
        path = tmp_path / "users.json"
        path.write_text(json.dumps({"users": [{"username": "legacy"}]}), encoding="utf-8")
        store = CredentialStore(path)
        assert store.save(TestUser(username="legacy", password="pw")) is False
        assert json.loads(path.read_text(encoding="utf-8")) == {"users": [{"username": "legacy"}]}


class TestCreateRandom:
    """Freshly minted accounts."""

    def test_create_random_persists_one_user(self, store):
        user = store.create_random("e2e", persist=True)
        users = store.load()
        assert len(users) == 1
        assert users[0] == user
        assert user.username.startswith("e2e")
        assert len(user.username) == len("e2e") + 6
        assert user.email.startswith("e2e+") and user.email.endswith("@example.com")
        assert user.password == "Password123!"

    def test_create_random_without_persist(self, store):
        store.create_random("fuzz", persist=False)
        assert store.load() == []

    def test_find_or_create_reuses_first(self, store):
        first = store.find_or_create("sec")
        again = store.find_or_create("other")
        assert first == again
        assert len(store.load()) == 1


class TestLookupHelpers:
    """get_user / get_users / get_random_user / get_user_with_username."""

    def test_defaults_when_empty(self, store):
        user = store.get_user(3)
        assert user.email == "test@example.com"
        assert user.password == "Password123!"

    def test_get_user_wraps_around(self, store):
        a = TestUser(email="a@example.com", password="x")
        b = TestUser(email="b@example.com", password="x")
        store.save(a)
        store.save(b)
        assert store.get_user(2) == a
        assert store.get_users(3) == [a, b, a]

    def test_get_user_with_username(self, store):
        store.save(TestUser(email="a@example.com", password="x"))
        store.save(TestUser(username="named", email="n@example.com", password="x"))
        assert store.get_user_with_username().username == "named"

    def test_get_random_user_is_stored(self, store):
        stored = store.create_random()
        assert store.get_random_user() == stored
