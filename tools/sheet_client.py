"""
Sheet Client — Async HTTP client for the character sheet REST API.

Wraps the five character operations (list/get/create/update/delete).
`update()` matches the sync session's persistence interface, so a
SheetClient can be handed straight to CharacterSyncSession.

Requires:
  - SHEET_API_URL: server base URL (default: http://127.0.0.1:8000)
  - SHEET_API_TOKEN: bearer token for the calling user

All public methods are async. Callers must `await` every call.
"""

import os
import asyncio
import logging
from typing import Optional, Dict, Any, List

import aiohttp

from models.characters import Character
from tools.sheet_errors import (
    SheetError,
    SheetConnectionError,
    SheetTimeoutError,
    SheetNotFoundError,
    SheetValidationError,
    SheetAuthError,
)

logger = logging.getLogger('SheetClient')


class SheetClient:
    """Async client for the character sheet API.

    Usage:
        client = SheetClient()
        await client.connect()       # creates aiohttp session, checks /health
        sheets = await client.list_characters()
        await client.close()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 15,
    ):
        self.base_url = (base_url or os.getenv('SHEET_API_URL', 'http://127.0.0.1:8000')).rstrip('/')
        self.token = token if token is not None else os.getenv('SHEET_API_TOKEN')
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

        if not self.token:
            logger.warning("SHEET_API_TOKEN not set, requests will be rejected as unauthenticated.")

    # ------------------------------------------------------------------
    # Internal HTTP layer
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"
        return headers

    async def _raise_for_status(self, resp: aiohttp.ClientResponse) -> None:
        """Map HTTP status codes to specific sheet error types."""
        if resp.status < 400:
            return
        try:
            payload = await resp.json(content_type=None)
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            message = payload.get('error') or str(payload)
            details = payload.get('details')
        else:
            message = await resp.text()
            details = None

        if resp.status in (401, 403):
            raise SheetAuthError(f"Auth failed ({resp.status}): {message}", resp.status)
        elif resp.status == 404:
            raise SheetNotFoundError(f"Not found ({resp.status}): {message}", resp.status)
        elif resp.status == 400:
            raise SheetValidationError(f"Invalid data ({resp.status}): {message}", resp.status, details)
        elif resp.status >= 500:
            raise SheetConnectionError(f"Server error ({resp.status}): {message}", resp.status)
        else:
            raise SheetError(f"HTTP {resp.status}: {message}", resp.status, details)

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[Dict] = None,
    ) -> Any:
        """Execute one HTTP request. Returns the decoded JSON, or None for 204."""
        session = self._session
        if session is None or session.closed:
            raise SheetConnectionError("No active aiohttp session, call connect() first.")

        url = f"{self.base_url}{path}"
        client_timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with session.request(method, url, headers=self._headers(), json=body,
                                       timeout=client_timeout) as resp:
                await self._raise_for_status(resp)
                if resp.status == 204:
                    return None
                return await resp.json()
        except aiohttp.ClientError as e:
            raise SheetConnectionError(f"Network error: {e}") from e
        except asyncio.TimeoutError as e:
            raise SheetTimeoutError(f"Request timed out after {self.timeout}s: {path}") from e

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Create the session and check the server is up. Returns True if reachable."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        try:
            await self._request('GET', '/health')
            logger.info(f"Connected to sheet API at {self.base_url}")
            return True
        except SheetError as e:
            logger.error(f"Sheet API connection failed: {e}")
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.info("Sheet client closed.")

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    async def list_characters(self) -> List[Character]:
        data = await self._request('GET', '/api/characters')
        return [Character.model_validate(d) for d in data]

    async def get_character(self, character_id: str) -> Character:
        data = await self._request('GET', f'/api/characters/{character_id}')
        return Character.model_validate(data)

    async def create_character(self, data: Dict[str, Any]) -> Character:
        created = await self._request('POST', '/api/characters', body=data)
        return Character.model_validate(created)

    async def update(self, character_id: str, patch: Dict[str, Any]) -> Character:
        """PATCH a partial update. Raises SheetNotFoundError if the id is not ours."""
        updated = await self._request('PATCH', f'/api/characters/{character_id}', body=patch)
        return Character.model_validate(updated)

    async def delete_character(self, character_id: str) -> None:
        await self._request('DELETE', f'/api/characters/{character_id}')

    async def get_sheet(self, character_id: str) -> Dict[str, Any]:
        """Derived numbers for a character (modifiers, AC, attacks, ...)."""
        return await self._request('GET', f'/api/characters/{character_id}/sheet')
