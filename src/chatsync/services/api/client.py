"""
ChatApiClient - send, edit and delete through the message functions.

The functions persist the message, attach uploaded media and shared
resources, and return the stored row in a `{"success": ..., "message": ...}`
envelope. Uploading files is the caller's job; only uploaded media
references travel in the request.
"""

from typing import Any, Optional

import httpx
from loguru import logger

from ...errors import SendFailedError, TransientServiceError
from ...models.entities import ChatMessage, SendRequest
from ...settings import APISettings, settings


class ChatApiClient:
    """httpx client implementing the MessageSender protocol."""

    def __init__(
        self,
        api_settings: Optional[APISettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize API client.

        Args:
            api_settings: API settings (defaults to global settings)
            client: Pre-built httpx client (tests, shared connection pools)
        """
        self.settings = api_settings or settings.api
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        self._client = client or httpx.AsyncClient(
            base_url=self.settings.base_url.rstrip("/") + "/",
            headers=headers,
            timeout=self.settings.timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _invoke(self, function: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(function, json=body)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Message function {function} failed: {e}")
            raise TransientServiceError(f"{function} failed: {e}") from e

        if not data.get("success"):
            logger.error(f"Message function {function} rejected request: {data.get('error')}")
            raise TransientServiceError(f"{function} rejected request: {data.get('error')}")
        return data

    async def send_message(self, request: SendRequest) -> ChatMessage:
        """
        Persist a message and return the stored record.

        Raises:
            SendFailedError: If the function fails or rejects the message
        """
        body: dict[str, Any] = {
            "session_id": request.session_id,
            "content": request.content,
            "client_id": request.client_id,
        }
        if request.media:
            body["media_items"] = [m.model_dump(exclude={"id", "message_id"}) for m in request.media]
        if request.resources:
            body["resources"] = [
                {"resource_id": r.resource_id, "resource_type": r.resource_type.value}
                for r in request.resources
            ]

        try:
            data = await self._invoke("send-chat-message", body)
            message = ChatMessage.model_validate(data["message"])
        except (TransientServiceError, KeyError, ValueError) as e:
            raise SendFailedError(str(e)) from e

        if message.client_id is None:
            message = message.model_copy(update={"client_id": request.client_id})
        return message

    async def edit_message(self, message_id: str, content: str) -> ChatMessage:
        """Change the content of a message and return the stored record."""
        data = await self._invoke(
            "edit-chat-message", {"message_id": message_id, "content": content}
        )
        try:
            return ChatMessage.model_validate(data["message"])
        except (KeyError, ValueError) as e:
            raise TransientServiceError(f"edit-chat-message returned no message: {e}") from e

    async def delete_message(self, message_id: str) -> None:
        """Delete a message."""
        await self._invoke("delete-chat-message", {"message_id": message_id})
