"""
Evolution API Client

REST client for Evolution API (Baileys-based WhatsApp Web integration).
Manages instances (create, connect, state, logout, delete) and sends text.

Documentation: https://doc.evolution-api.com/
"""

import logging
from typing import Any

import httpx

from wa_sessions.errors import TransportError

logger = logging.getLogger(__name__)


class EvolutionApiClient:
    """
    Evolution API REST client.

    One Evolution instance backs one tenant session, addressed by instance_name.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize client.

        Args:
            api_url: Base URL of Evolution API (e.g., "https://evolution-api.example.com")
            api_key: Global API key for authentication
            timeout: HTTP request timeout
            http_client: Preconfigured client (tests inject a MockTransport here)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = http_client

    @property
    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "apikey": self.api_key}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated API request."""
        client = await self._get_client()
        url = f"{self.api_url}{endpoint}"

        try:
            response = await client.request(
                method.upper(),
                url,
                json=json_data,
                params=params,
                headers=self._headers,
            )
        except httpx.RequestError as e:
            logger.error(f"HTTP request failed: {e}")
            raise TransportError(
                message=f"HTTP request failed: {e}",
                code="HTTP_ERROR",
                retryable=True,
            ) from e

        try:
            response_data = response.json()
        except ValueError:
            response_data = {"message": response.text}

        if response.status_code >= 400:
            error: Any = "Unknown error"
            if isinstance(response_data, dict):
                error = response_data.get("error") or response_data.get("message") or error
                response_obj = response_data.get("response")
                if isinstance(response_obj, dict) and response_obj.get("message"):
                    error = response_obj["message"]
            raise TransportError(
                message=str(error),
                code=str(response.status_code),
                details=response_data if isinstance(response_data, dict) else {"body": response_data},
                retryable=response.status_code >= 500,
            )

        return response_data

    async def create_instance(
        self,
        instance_name: str,
        integration: str = "WHATSAPP-BAILEYS",
    ) -> dict[str, Any]:
        """
        Create a new Evolution API instance.

        Args:
            instance_name: Unique name for the instance
            integration: Integration type (WHATSAPP-BAILEYS, etc)

        Returns:
            Instance creation response (instance info and its token under "hash")
        """
        payload = {
            "instanceName": instance_name,
            "qrcode": True,
            "integration": integration,
        }
        return await self._make_request("POST", "/instance/create", payload)

    async def connect_instance(self, instance_name: str) -> dict[str, Any]:
        """
        Connect/initialize an instance (generate QR code).

        Returns:
            {"code": "<raw pairing code>", "base64": "...", "pairingCode": ...}
        """
        return await self._make_request("GET", f"/instance/connect/{instance_name}")

    async def connection_state(self, instance_name: str) -> str:
        """
        Get the connection state of an instance.

        Returns:
            "open", "connecting" or "close"
        """
        response = await self._make_request("GET", f"/instance/connectionState/{instance_name}")
        instance = response.get("instance") or response
        return str(instance.get("state", "close")).lower()

    async def fetch_owner_jid(self, instance_name: str) -> str | None:
        """
        Get the account JID an instance is paired with.

        Returns:
            JID string or None when unknown
        """
        response = await self._make_request(
            "GET", "/instance/fetchInstances", params={"instanceName": instance_name}
        )
        instances = response if isinstance(response, list) else response.get("instance", [])
        if isinstance(instances, dict):
            instances = [instances]

        for entry in instances:
            info = entry.get("instance", entry)
            name = info.get("instanceName") or info.get("name")
            if name and name != instance_name:
                continue
            return info.get("ownerJid") or info.get("owner")
        return None

    async def logout_instance(self, instance_name: str) -> None:
        """Logout/unpair an instance."""
        await self._make_request("DELETE", f"/instance/logout/{instance_name}")

    async def delete_instance(self, instance_name: str) -> None:
        """Delete an instance."""
        await self._make_request("DELETE", f"/instance/delete/{instance_name}")

    async def send_text(self, instance_name: str, number: str, text: str) -> dict[str, Any]:
        """Send a text message through an instance."""
        payload = {"number": number, "text": text}
        return await self._make_request("POST", f"/message/sendText/{instance_name}", payload)
