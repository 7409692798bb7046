# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Extension Registry - Is an installed extension publicly available?

An extension can only be reinstalled on restore when the public registry
knows its slug. Extensions the registry does not know are recorded with
is_public=false and left for the operator to source manually.
"""

from typing import Protocol

import httpx
import structlog

from sitesnap.config import DEFAULT_REGISTRY_URL

logger = structlog.get_logger()

REGISTRY_KINDS = {
    "plugin": ("plugins/info/1.2/", "plugin_information"),
    "theme": ("themes/info/1.2/", "theme_information"),
}


class RegistryLookup(Protocol):
    """Resolves an installed extension to its public slug."""

    async def resolve_public_slug(self, identifier: str) -> str | None:
        """
        Look up an extension by its installed identifier.

        Returns:
            The public slug, or None if the registry has no such extension
        """
        ...


def slug_candidate(kind: str, identifier: str) -> str:
    """
    Derive the slug to ask the registry about.

    Plugins are identified by their main file ("akismet/akismet.php" or a
    single-file "hello.php"); the directory or file stem is the slug.
    Themes are identified by their stylesheet, which already is the slug.
    """
    if kind == "plugin":
        head = identifier.split("/", 1)[0]
        return head[:-4] if head.endswith(".php") else head
    return identifier


class PublicRegistry:
    """RegistryLookup backed by the public plugin/theme info API."""

    def __init__(
        self,
        kind: str,
        base_url: str = DEFAULT_REGISTRY_URL,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        if kind not in REGISTRY_KINDS:
            raise ValueError(f"Unknown registry kind: {kind}")

        self.kind = kind
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def resolve_public_slug(self, identifier: str) -> str | None:
        slug = slug_candidate(self.kind, identifier)
        if not slug:
            return None

        path, action = REGISTRY_KINDS[self.kind]
        url = f"{self.base_url}/{path}"
        params = {"action": action, "request[slug]": slug}

        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.warning("registry_lookup_failed", kind=self.kind, slug=slug, error=str(e))
            return None

        if response.status_code == 404:
            return None

        if response.status_code != 200:
            logger.warning(
                "registry_lookup_failed",
                kind=self.kind,
                slug=slug,
                status_code=response.status_code,
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("registry_response_invalid", kind=self.kind, slug=slug)
            return None

        if not isinstance(data, dict) or data.get("error") or not data.get("slug"):
            return None

        return data["slug"]
