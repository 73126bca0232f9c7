"""
Credential Store — CRUD and lookup over the credentials of an unlocked vault.

The store works purely in memory on the ``Vault`` it wraps; persisting the
result is the session's job. Every listing is ordered by recency
(``modified``, falling back to ``created``), newest first.
"""
import uuid
import time
import logging
from typing import Any, Callable, Mapping, Optional, Union
from urllib.parse import urlsplit

from pydantic import ValidationError as ModelValidationError

from .data import Credential, Vault, now_ms
from .exceptions import NotFound, ValidationError

logger = logging.getLogger("lockdown.vault")

# Fields the caller can never overwrite on update.
_IMMUTABLE_FIELDS = frozenset({"id", "created"})
_SEARCH_FIELDS = ("name", "domain", "username", "email")


def domain_from_url(url: Optional[str]) -> str:
    """Return the host part of a URL, or an empty string if unparseable."""
    if not url:
        return ""
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        return ""
    return host or ""


def by_recency(credentials) -> list[Credential]:
    return sorted(credentials, key=lambda cred: cred.recency, reverse=True)


class CredentialStore:
    """Operations over the credential collection of one ``Vault``."""

    def __init__(self, vault: Vault, clock: Callable[[], float] = time.time):
        self._vault = vault
        self._clock = clock

    def _new_id(self) -> str:
        existing = self._vault.ids()
        while True:
            candidate = uuid.uuid4().hex
            if candidate not in existing:
                return candidate

    def _find_index(self, credential_id: str) -> int:
        for idx, cred in enumerate(self._vault.credentials):
            if cred.id == credential_id:
                return idx
        raise NotFound()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, data: Union[Mapping[str, Any], Credential]) -> Credential:
        """Add a new credential.

        Assigns a fresh id and sets ``created`` and ``modified`` to now.
        ``domain`` is derived from the URL host when not given.

        Raises:
            ValidationError: If the password is empty, or none of
                name/domain/url is provided.
        """
        if isinstance(data, Credential):
            data = data.model_dump()
        fields = {
            k: v for k, v in dict(data).items()
            if k not in _IMMUTABLE_FIELDS and k != "modified" and v is not None
        }
        if not fields.get("password"):
            raise ValidationError("Password is required")
        if not (fields.get("name") or fields.get("domain") or fields.get("url")):
            raise ValidationError("A name, domain or URL is required")
        if not fields.get("domain"):
            fields["domain"] = domain_from_url(fields.get("url"))
        now = now_ms(self._clock)
        try:
            credential = Credential(
                id=self._new_id(), created=now, modified=now, **fields
            )
        except ModelValidationError as err:
            raise ValidationError(f"Invalid credential: {err.error_count()} field error(s)") from err
        self._vault.credentials.append(credential)
        logger.debug("Credential created: id=%s", credential.id)
        return credential

    def update(self, credential_id: str, fields: Mapping[str, Any]) -> Credential:
        """Merge fields into an existing credential and bump ``modified``.

        Raises:
            NotFound: If no credential has that id.
            ValidationError: If the merged record is invalid.
        """
        idx = self._find_index(credential_id)
        current = self._vault.credentials[idx]
        merged = current.model_dump()
        merged.update(
            {k: v for k, v in dict(fields).items() if k not in _IMMUTABLE_FIELDS}
        )
        if "password" in fields and not merged.get("password"):
            raise ValidationError("Password is required")
        if not merged.get("domain") and merged.get("url"):
            merged["domain"] = domain_from_url(merged["url"])
        merged["modified"] = max(now_ms(self._clock), current.created)
        try:
            updated = Credential.model_validate(merged)
        except ModelValidationError as err:
            raise ValidationError(f"Invalid credential: {err.error_count()} field error(s)") from err
        self._vault.credentials[idx] = updated
        logger.debug("Credential updated: id=%s", credential_id)
        return updated

    def delete(self, credential_id: str) -> None:
        """Remove a credential.

        Raises:
            NotFound: If no credential has that id.
        """
        idx = self._find_index(credential_id)
        del self._vault.credentials[idx]
        logger.debug("Credential deleted: id=%s", credential_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, credential_id: str) -> Credential:
        credential = self._vault.get(credential_id)
        if credential is None:
            raise NotFound()
        return credential

    def list_all(self) -> list[Credential]:
        return by_recency(self._vault.credentials)

    def find_by_domain(self, domain: str) -> list[Credential]:
        """Credentials to suggest for a site.

        Matches on exact domain, on a URL containing the domain, or on a
        name containing it (case-insensitive). Favors recall over precision.
        """
        if not domain:
            return []
        needle = domain.lower()
        matches = [
            cred for cred in self._vault.credentials
            if cred.domain == domain
            or (cred.url and domain in cred.url)
            or (cred.name and needle in cred.name.lower())
        ]
        return by_recency(matches)

    def search(self, query: str) -> list[Credential]:
        """Case-insensitive substring search over name, domain, username, email.

        An empty query returns nothing.
        """
        if not query:
            return []
        term = query.lower()
        matches = [
            cred for cred in self._vault.credentials
            if any(
                term in (getattr(cred, field) or "").lower()
                for field in _SEARCH_FIELDS
            )
        ]
        return by_recency(matches)
