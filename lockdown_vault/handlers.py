"""
Message Handlers — Request/response API consumed by UI collaborators.

Each request is a dict with a ``type`` key plus arguments; each response is
either ``{"success": True, ...}``, a data payload, or ``{"error": str}``.
Vault errors never escape as exceptions.
"""
import logging
from typing import Any, Awaitable, Callable, Mapping

from .data import Credential
from .exceptions import NotFound, ValidationError, VaultError
from .passwords import DEFAULT_LENGTH, generate_password, password_strength
from .vault.session_vault import VaultSession

logger = logging.getLogger("lockdown.handlers")

Response = dict[str, Any]


def _credentials(items: list[Credential]) -> Response:
    return {"credentials": [cred.to_dict() for cred in items]}


class VaultMessageHandler:
    """Dispatch API messages to a ``VaultSession``.

    Usage::

        handler = VaultMessageHandler(session)
        response = await handler.handle({"type": "GET_STATUS"})
    """

    def __init__(self, session: VaultSession):
        self.session = session
        self._routes: dict[str, Callable[[Mapping[str, Any]], Awaitable[Response]]] = {
            "SETUP_VAULT": self.setup_vault,
            "UNLOCK_VAULT": self.unlock_vault,
            "LOCK_VAULT": self.lock_vault,
            "GET_STATUS": self.get_status,
            "SAVE_CREDENTIAL": self.save_credential,
            "GET_CREDENTIALS": self.get_credentials,
            "GET_ALL_CREDENTIALS": self.get_all_credentials,
            "SEARCH_CREDENTIALS": self.search_credentials,
            "UPDATE_CREDENTIAL": self.update_credential,
            "DELETE_CREDENTIAL": self.delete_credential,
            "GENERATE_PASSWORD": self.generate_password,
            "UPDATE_AUTO_LOCK": self.update_auto_lock,
            "GET_REMAINING_TIME": self.get_remaining_time,
            "CHANGE_MASTER_PASSWORD": self.change_master_password,
            "CHECK_PASSWORD_STRENGTH": self.check_password_strength,
        }

    async def handle(self, message: Mapping[str, Any]) -> Response:
        """Run one message to completion and return its response."""
        msg_type = message.get("type") if isinstance(message, Mapping) else None
        route = self._routes.get(msg_type) if isinstance(msg_type, str) else None
        if route is None:
            return {"error": f"Unknown message type: {msg_type}"}
        try:
            await self.session.start()
            return await route(message)
        except VaultError as err:
            logger.debug("%s failed: %s", msg_type, type(err).__name__)
            return {"error": err.message}
        except Exception:
            logger.exception("Unexpected error handling %s", msg_type)
            return {"error": "Internal error"}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def setup_vault(self, message: Mapping[str, Any]) -> Response:
        security = await self.session.setup(message.get("masterPassword"))
        return {"success": True, "security": security}

    async def unlock_vault(self, message: Mapping[str, Any]) -> Response:
        vault = await self.session.unlock(message.get("masterPassword"))
        return {"success": True, "vault": vault.to_dict()}

    async def lock_vault(self, message: Mapping[str, Any]) -> Response:
        await self.session.lock()
        return {"success": True}

    async def get_status(self, message: Mapping[str, Any]) -> Response:
        return self.session.status()

    async def change_master_password(self, message: Mapping[str, Any]) -> Response:
        security = await self.session.change_passphrase(
            message.get("oldPassword"), message.get("newPassword")
        )
        return {"success": True, "security": security}

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def save_credential(self, message: Mapping[str, Any]) -> Response:
        data = message.get("credential")
        if not isinstance(data, Mapping):
            raise ValidationError("Credential is required")
        credential = await self.session.save_credential(data)
        return {
            "success": True,
            "credential": credential.to_dict(),
            "security": self.session.security_level,
        }

    async def update_credential(self, message: Mapping[str, Any]) -> Response:
        data = message.get("credential")
        if not isinstance(data, Mapping) or not data.get("id"):
            raise NotFound()
        fields = {k: v for k, v in data.items() if k != "id"}
        await self.session.update_credential(data["id"], fields)
        return {"success": True}

    async def delete_credential(self, message: Mapping[str, Any]) -> Response:
        await self.session.delete_credential(message.get("credentialId"))
        return {"success": True}

    async def get_credentials(self, message: Mapping[str, Any]) -> Response:
        return _credentials(self.session.get_credentials(message.get("domain") or ""))

    async def get_all_credentials(self, message: Mapping[str, Any]) -> Response:
        return _credentials(self.session.get_all())

    async def search_credentials(self, message: Mapping[str, Any]) -> Response:
        return _credentials(self.session.search(message.get("query") or ""))

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    async def generate_password(self, message: Mapping[str, Any]) -> Response:
        password = generate_password(
            message.get("length") or DEFAULT_LENGTH,
            message.get("symbols") is not False,
        )
        return {"password": password}

    async def check_password_strength(self, message: Mapping[str, Any]) -> Response:
        return {"strength": password_strength(message.get("password") or "")}

    async def update_auto_lock(self, message: Mapping[str, Any]) -> Response:
        await self.session.update_auto_lock(message.get("delay"))
        return {"success": True}

    async def get_remaining_time(self, message: Mapping[str, Any]) -> Response:
        return self.session.remaining_time()
