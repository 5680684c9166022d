"""Client for the provider's alert-list (tzintuk) membership API.

Read-only: the phone line never adds or removes list members itself.
Enrollment and removal happen by transferring the caller into the
provider's own list extensions.

  GET {base}/TzintukimListManagement?token=..&action=getlists
  GET {base}/TzintukimListManagement?token=..&action=getlistEnteres&TzintukimList=<name>
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

from jobline.audio import LIST_NAME_TO_HEBREW
from jobline.errors import DirectoryError

log = logging.getLogger("jobline.directory")


@dataclass(frozen=True)
class AlertList:
    """One provider alert list."""

    name: str
    ext_path: str = ""

    @property
    def spoken_name(self) -> str:
        return LIST_NAME_TO_HEBREW.get(self.name, self.name)


@dataclass(frozen=True)
class ListMember:
    phone: str
    name: str = ""
    date_added: str = ""


def normalize_phone(phone: str) -> str:
    """Digits only, with an international 972 prefix folded to a local 0."""
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("972"):
        digits = "0" + digits[3:]
    return digits


class YemotDirectoryClient:
    """Async client for list enumeration and membership checks.

    Args:
        token: provider API token.
        base_url: provider API base.
        transport: optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://www.call2all.co.il/ym/api",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = token
        self._url = f"{base_url.rstrip('/')}/TzintukimListManagement"
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._token)

    async def _call(self, client: httpx.AsyncClient, params: dict[str, str]) -> dict:
        try:
            resp = await client.get(self._url, params={"token": self._token, **params})
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise DirectoryError(
                f"{params['action']} returned status {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise DirectoryError(f"{params['action']} failed: {exc}") from exc

        if data.get("responseStatus") != "OK":
            raise DirectoryError(
                f"{params['action']} answered {data.get('responseStatus')!r}: "
                f"{data.get('message', '')}"
            )
        return data

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def list_all(self) -> list[AlertList]:
        """Return every alert list defined on the system."""
        if not self.configured:
            raise DirectoryError("provider API token not configured")
        async with self._client() as client:
            data = await self._call(client, {"action": "getlists"})
        return [
            AlertList(name=item.get("listName", ""), ext_path=item.get("extPath", ""))
            for item in data.get("lists") or []
        ]

    async def list_members(self, list_name: str) -> list[ListMember]:
        if not self.configured:
            raise DirectoryError("provider API token not configured")
        async with self._client() as client:
            return await self._members(client, list_name)

    async def _members(self, client: httpx.AsyncClient, list_name: str) -> list[ListMember]:
        data = await self._call(
            client, {"action": "getlistEnteres", "TzintukimList": list_name}
        )
        return [
            ListMember(
                phone=str(item.get("phone", "")),
                name=item.get("name") or "",
                date_added=item.get("dateAdded") or "",
            )
            for item in data.get("enteres") or []
        ]

    async def lists_for_phone(self, phone: str) -> list[AlertList]:
        """Return the lists ``phone`` is a member of.

        Member lists are fetched concurrently.  Any failure raises
        DirectoryError; a partial answer is never returned.
        """
        wanted = normalize_phone(phone)
        if not wanted:
            return []

        lists = await self.list_all()
        async with self._client() as client:
            member_sets = await asyncio.gather(
                *(self._members(client, alert_list.name) for alert_list in lists)
            )

        matched = [
            alert_list
            for alert_list, members in zip(lists, member_sets)
            if any(normalize_phone(member.phone) == wanted for member in members)
        ]
        log.info("Caller is on %d of %d alert lists", len(matched), len(lists))
        return matched
