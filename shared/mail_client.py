"""
Microsoft Graph mail search.

The client-credentials token lives in a TokenCache owned by the client.
Search results carry a MailStatus so callers can tell a tenant access-policy
block apart from a missing configuration or a generic failure.
"""

import time
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiohttp

from shared import config
from shared.exceptions import CollaboratorError
from shared.util import uniq_short

logger = logging.getLogger(__name__)

# refresh this many seconds before the token actually expires
TOKEN_EXPIRY_MARGIN_SECONDS = 300


class MailStatus(str, Enum):
    OK = "ok"
    FORBIDDEN_POLICY = "forbidden_policy"
    NO_CREDENTIALS = "no_credentials"
    ERROR = "error"


@dataclass
class MailSearchResult:
    emails: List[Dict[str, Any]] = field(default_factory=list)
    status: MailStatus = MailStatus.OK


class TokenCache:
    """
    Holds one bearer token and its expiry.

    ``fetch`` is an async callable returning ``(access_token, expires_in_seconds)``.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Tuple[str, int]]],
        clock: Callable[[], float] = time.time,
    ):
        self._fetch = fetch
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def is_valid(self) -> bool:
        return bool(self._token) and self._clock() < self._expires_at

    async def refresh(self) -> str:
        token, expires_in = await self._fetch()
        self._token = token
        self._expires_at = self._clock() + max(0, int(expires_in) - TOKEN_EXPIRY_MARGIN_SECONDS)
        return token

    async def get(self) -> str:
        if self.is_valid():
            return self._token
        async with self._lock:
            if self.is_valid():
                return self._token
            return await self.refresh()

    def invalidate(self, token: Optional[str] = None):
        """Drop the cached token; with ``token``, only if it is still the cached one."""
        if token is not None and token != self._token:
            return
        self._token = None
        self._expires_at = 0.0


class PolicyBlockedError(CollaboratorError):
    """403 caused by an Exchange application access policy."""


class TokenExpiredError(CollaboratorError):
    """401: the bearer token was rejected."""


class MailClient:
    def __init__(
        self,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        mailbox: Optional[str] = None,
        base_url: Optional[str] = None,
        per_term_top: int = 5,
    ):
        self.tenant_id = tenant_id if tenant_id is not None else config.MS_TENANT_ID
        self.client_id = client_id if client_id is not None else config.MS_CLIENT_ID
        self.client_secret = (
            client_secret if client_secret is not None else config.MS_CLIENT_SECRET
        )
        self.mailbox = mailbox if mailbox is not None else config.MS_MAILBOX
        self.base_url = (base_url or config.GRAPH_BASE_URL).rstrip("/")
        self.per_term_top = per_term_top
        self.token_cache = TokenCache(self._fetch_token)

    @property
    def available(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret and self.mailbox)

    async def _fetch_token(self) -> Tuple[str, int]:
        url = f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token"
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": "https://graph.microsoft.com/.default",
            "grant_type": "client_credentials",
        }
        async with aiohttp.ClientSession() as session:
            async with session.post(url, data=data) as response:
                if response.status != 200:
                    text = await response.text()
                    raise CollaboratorError("mail", f"token request failed: {text[:200]}", response.status)
                payload = await response.json()
                logger.info("[MailClient] Access token acquired")
                return payload["access_token"], int(payload.get("expires_in", 3600))

    async def _search_term(self, token: str, term: str) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/users/{self.mailbox}/messages"
        params = {
            "$top": str(self.per_term_top),
            "$search": f'"{term}"',
            "$select": "id,subject,from,receivedDateTime,bodyPreview,webLink",
        }
        headers = {
            "Authorization": f"Bearer {token}",
            "ConsistencyLevel": "eventual",
            "Prefer": 'outlook.body-content-type="text"',
        }
        async with aiohttp.ClientSession() as session:
            async with session.get(url, headers=headers, params=params) as response:
                if response.status == 200:
                    payload = await response.json()
                    return [self._to_comms(m) for m in payload.get("value", []) if m.get("id")]
                text = await response.text()
                if response.status == 403 and "ApplicationAccessPolicy" in text:
                    raise PolicyBlockedError("mail", "blocked by application access policy", 403)
                if response.status == 401:
                    raise TokenExpiredError("mail", text[:200], 401)
                raise CollaboratorError("mail", text[:200], response.status)

    async def _search_with_refresh(self, token: str, term: str) -> List[Dict[str, Any]]:
        """One term search; a rejected token is replaced once and the search retried."""
        try:
            return await self._search_term(token, term)
        except TokenExpiredError:
            logger.info(f"[MailClient] Token rejected for '{term}', retrying with a fresh token")
            self.token_cache.invalidate(token)
            return await self._search_term(await self.token_cache.get(), term)

    async def search_emails(self, terms: List[str], limit: int = 10) -> MailSearchResult:
        """Search the configured mailbox for each term (up to 7) and merge by message id."""
        if not self.available:
            return MailSearchResult(status=MailStatus.NO_CREDENTIALS)

        search_terms = uniq_short(terms, 7)
        if not search_terms:
            return MailSearchResult()

        try:
            token = await self.token_cache.get()
        except Exception as e:
            logger.error(f"[MailClient] Could not acquire token: {e}")
            return MailSearchResult(status=MailStatus.ERROR)

        results = await asyncio.gather(
            *[self._search_with_refresh(token, term) for term in search_terms],
            return_exceptions=True,
        )

        if any(isinstance(r, PolicyBlockedError) for r in results):
            logger.warning("[MailClient] Mailbox access blocked by tenant policy")
            return MailSearchResult(status=MailStatus.FORBIDDEN_POLICY)

        unique: Dict[str, Dict[str, Any]] = {}
        failures = 0
        for result in results:
            if isinstance(result, Exception):
                failures += 1
                logger.error(f"[MailClient] Term search failed: {result}")
                continue
            for email in result:
                unique.setdefault(email["id"], email)

        if failures == len(results):
            return MailSearchResult(status=MailStatus.ERROR)

        emails = sorted(unique.values(), key=lambda e: e.get("timestamp") or "", reverse=True)
        return MailSearchResult(emails=emails[:limit])

    @staticmethod
    def _to_comms(message: Dict[str, Any]) -> Dict[str, Any]:
        sender = ((message.get("from") or {}).get("emailAddress") or {})
        return {
            "id": message["id"],
            "type": "email",
            "title": message.get("subject") or "(no subject)",
            "timestamp": message.get("receivedDateTime"),
            "preview": (message.get("bodyPreview") or "")[:200],
            "link": message.get("webLink"),
            "sender": sender.get("name") or sender.get("address"),
        }
