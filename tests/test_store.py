"""
Tests for the in-memory credential store.

Tests cover:
- Create/update/delete lifecycle and timestamps
- Validation of new credentials
- Domain lookup and search
- Recency ordering
"""
import pytest

from lockdown_vault.data import Credential, Vault
from lockdown_vault.exceptions import NotFound, ValidationError
from lockdown_vault.store import CredentialStore, domain_from_url

GMAIL = {
    "name": "Gmail", "domain": "gmail.com",
    "username": "a@b.com", "password": "x",
}


@pytest.fixture
def store(clock):
    return CredentialStore(Vault(created=0), clock=clock)


# --- Test CRUD ---

class TestCredentialLifecycle:
    """Create, update and delete."""

    def test_crud_scenario(self, store, clock):
        cred = store.create(GMAIL)
        assert cred.id
        assert cred.created == cred.modified == 1_700_000_000_000
        assert cred.domain == "gmail.com"

        clock.advance(5)
        updated = store.update(cred.id, {"password": "y"})
        assert updated.password == "y"
        assert updated.modified == cred.created + 5000
        assert updated.created == cred.created

        store.delete(cred.id)
        assert store.list_all() == []
        with pytest.raises(NotFound):
            store.delete(cred.id)

    def test_ids_unique(self, store):
        ids = {store.create(GMAIL).id for _ in range(50)}
        assert len(ids) == 50

    def test_caller_cannot_set_id_or_created(self, store):
        cred = store.create({**GMAIL, "id": "mine", "created": 1, "modified": 2})
        assert cred.id != "mine"
        assert cred.created == cred.modified

    def test_update_ignores_id_and_created(self, store):
        cred = store.create(GMAIL)
        updated = store.update(cred.id, {"id": "other", "created": 5, "notes": "hi"})
        assert updated.id == cred.id
        assert updated.created == cred.created
        assert updated.notes == "hi"
        assert store.get(cred.id).notes == "hi"

    def test_modified_never_before_created(self, store, clock):
        cred = store.create(GMAIL)
        clock.advance(-60)
        assert store.update(cred.id, {"notes": "n"}).modified == cred.created

    def test_update_missing(self, store):
        with pytest.raises(NotFound):
            store.update("nope", {"password": "y"})

    def test_get_missing(self, store):
        with pytest.raises(NotFound):
            store.get("nope")

    def test_update_cannot_clear_password(self, store):
        cred = store.create(GMAIL)
        with pytest.raises(ValidationError):
            store.update(cred.id, {"password": ""})

    def test_create_accepts_model(self, store):
        cred = store.create(Credential(id="ignored", name="Bank", password="p"))
        assert cred.id != "ignored"
        assert cred.name == "Bank"

    def test_extra_fields_kept(self, store):
        cred = store.create({**GMAIL, "favicon": "g.ico"})
        assert cred.to_dict()["favicon"] == "g.ico"


# --- Test Validation ---

class TestCreateValidation:
    """Minimal validation on create."""

    def test_password_required(self, store):
        with pytest.raises(ValidationError):
            store.create({"name": "Gmail"})

    def test_name_domain_or_url_required(self, store):
        with pytest.raises(ValidationError):
            store.create({"username": "a", "password": "x"})

    def test_domain_derived_from_url(self, store):
        cred = store.create({"url": "https://accounts.google.com/signin?x=1", "password": "x"})
        assert cred.domain == "accounts.google.com"

    def test_invalid_field_type(self, store):
        with pytest.raises(ValidationError):
            store.create({**GMAIL, "username": ["not", "a", "string"]})


# --- Test Lookups ---

class TestLookups:
    """Domain lookup, search and ordering."""

    def test_domain_scenario(self, store):
        gmail = store.create(GMAIL)
        store.create({"name": "Google Mail", "domain": "mail.google.com", "password": "x"})
        assert [c.id for c in store.find_by_domain("gmail.com")] == [gmail.id]

    def test_domain_matches_url_and_name(self, store, clock):
        by_url = store.create({
            "name": "Google", "domain": "mail.google.com",
            "url": "https://gmail.com/login", "password": "x",
        })
        clock.advance(1)
        by_name = store.create({
            "name": "My GMAIL.COM account", "domain": "example.org", "password": "x",
        })
        store.create({"name": "Other", "domain": "other.net", "password": "x"})
        found = store.find_by_domain("gmail.com")
        assert [c.id for c in found] == [by_name.id, by_url.id]

    def test_empty_domain(self, store):
        store.create(GMAIL)
        assert store.find_by_domain("") == []

    def test_search_fields(self, store):
        store.create(GMAIL)
        store.create({"name": "Bank", "email": "Me@Example.com", "password": "x"})
        assert [c.name for c in store.search("gmail")] == ["Gmail"]
        assert [c.name for c in store.search("A@B")] == ["Gmail"]
        assert [c.name for c in store.search("example")] == ["Bank"]
        assert store.search("nothing") == []

    def test_search_ignores_password_and_notes(self, store):
        store.create({**GMAIL, "notes": "zebra", "password": "zebra"})
        assert store.search("zebra") == []

    def test_empty_query(self, store):
        store.create(GMAIL)
        assert store.search("") == []

    def test_newest_first(self, store, clock):
        first = store.create({**GMAIL, "name": "first"})
        clock.advance(1)
        second = store.create({**GMAIL, "name": "second"})
        clock.advance(1)
        assert [c.id for c in store.list_all()] == [second.id, first.id]
        store.update(first.id, {"notes": "touched"})
        assert [c.id for c in store.list_all()] == [first.id, second.id]


class TestDomainFromUrl:
    @pytest.mark.parametrize("url, host", [
        ("https://github.com/login", "github.com"),
        ("http://Example.COM:8080/x", "example.com"),
        ("not a url", ""),
        ("", ""),
        (None, ""),
    ])
    def test_hosts(self, url, host):
        assert domain_from_url(url) == host


class TestNullValues:
    def test_update_null_clears_field(self, store):
        cred = store.create({**GMAIL, "url": "https://gmail.com"})
        updated = store.update(cred.id, {"url": None, "notes": None})
        assert updated.url == ""
        assert updated.notes == ""
        assert updated.domain == "gmail.com"

    def test_update_null_password_rejected(self, store):
        cred = store.create(GMAIL)
        with pytest.raises(ValidationError):
            store.update(cred.id, {"password": None})
