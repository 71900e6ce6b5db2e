"""Content store adapters."""

from __future__ import annotations

import copy
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import httpx

from .documents import serialize_document
from .errors import ContentStoreError
from .structures import (
    CloneFailure,
    ClonePair,
    ContentItem,
    ContentUpdate,
    PostId,
    StoreCloneResponse,
)

ELEMENTOR_META_KEY = "_elementor_data"
TRANSLATION_GROUP_META_KEY = "_translation_group"
LANGUAGE_META_KEY = "_language"


class ContentStore(ABC):
    """Abstract access to the CMS holding the content being cloned."""

    @abstractmethod
    async def clone_many(
        self,
        ids: Sequence[PostId],
        target_language: str,
    ) -> StoreCloneResponse:
        """Duplicate the given items and report per-item success or failure."""

    @abstractmethod
    async def get_full(
        self,
        item_id: PostId,
        *,
        post_type: str | None = None,
    ) -> ContentItem:
        """Fetch the full editable content of an item."""

    @abstractmethod
    async def update(
        self,
        item_id: PostId,
        update: ContentUpdate,
        *,
        post_type: str | None = None,
    ) -> None:
        """Write changed fields back to an item."""

    @abstractmethod
    async def clone_menu(self, menu_id: PostId, target_language: str) -> str:
        """Duplicate a navigation menu for another language."""


class InMemoryContentStore(ContentStore):
    """Dictionary-backed store used for dry runs and tests."""

    def __init__(
        self,
        items: Iterable[ContentItem] = (),
        *,
        next_id: int = 1000,
        clone_failures: Mapping[PostId, str] | None = None,
        menus: Mapping[PostId, str] | None = None,
    ) -> None:
        self.items: Dict[PostId, ContentItem] = {item.id: item for item in items}
        self.next_id = next_id
        self.clone_failures = dict(clone_failures or {})
        self.menus: Dict[PostId, str] = dict(menus or {})
        self.updates: List[tuple[PostId, ContentUpdate]] = []

    async def clone_many(
        self,
        ids: Sequence[PostId],
        target_language: str,
    ) -> StoreCloneResponse:
        response = StoreCloneResponse()
        for item_id in ids:
            if item_id in self.clone_failures:
                response.failed.append(
                    CloneFailure(id=item_id, reason=self.clone_failures[item_id])
                )
                continue
            source = self.items.get(item_id)
            if source is None:
                response.failed.append(CloneFailure(id=item_id, reason="Item not found."))
                continue
            group_id = source.meta.setdefault(
                TRANSLATION_GROUP_META_KEY, uuid.uuid4().hex
            )
            clone = ContentItem(
                id=self._allocate_id(),
                post_type=source.post_type,
                title=source.title,
                body=source.body,
                document=copy.deepcopy(source.document),
                extra_blocks=dict(source.extra_blocks),
                sku=source.sku,
                status="draft",
                meta={
                    TRANSLATION_GROUP_META_KEY: group_id,
                    LANGUAGE_META_KEY: target_language,
                },
            )
            self.items[clone.id] = clone
            response.success.append(
                ClonePair(
                    original_id=item_id,
                    clone_id=clone.id,
                    post_type=source.post_type,
                )
            )
        return response

    async def get_full(
        self,
        item_id: PostId,
        *,
        post_type: str | None = None,
    ) -> ContentItem:
        item = self.items.get(item_id)
        if item is None:
            raise ContentStoreError(f"Item {item_id} not found.", status_code=404)
        return copy.deepcopy(item)

    async def update(
        self,
        item_id: PostId,
        update: ContentUpdate,
        *,
        post_type: str | None = None,
    ) -> None:
        item = self.items.get(item_id)
        if item is None:
            raise ContentStoreError(f"Item {item_id} not found.", status_code=404)
        self.updates.append((item_id, copy.deepcopy(update)))
        if update.title is not None:
            item.title = update.title
        if update.body is not None:
            item.body = update.body
        if update.document is not None:
            item.document = serialize_document(update.document)
        item.extra_blocks.update(update.extra_blocks)
        if update.sku is not None:
            item.sku = update.sku
        if update.status is not None:
            item.status = update.status

    async def clone_menu(self, menu_id: PostId, target_language: str) -> str:
        name = self.menus.get(menu_id)
        if name is None:
            raise ContentStoreError(f"Menu {menu_id} not found.", status_code=404)
        clone_id = self._allocate_id()
        clone_name = f"{name} ({target_language.upper()})"
        self.menus[clone_id] = clone_name
        return f"Menu '{name}' cloned as '{clone_name}'."

    def _allocate_id(self) -> int:
        while self.next_id in self.items or self.next_id in self.menus:
            self.next_id += 1
        allocated = self.next_id
        self.next_id += 1
        return allocated


class WordPressContentStore(ContentStore):
    """Content store backed by the WordPress and WooCommerce REST APIs.

    Bulk cloning and menu cloning go through the site's helper plugin, which
    exposes ``/wp-json/custom/v1`` endpoints.
    """

    WP_PREFIX = "/wp-json/wp/v2"
    WC_PREFIX = "/wp-json/wc/v3"
    PLUGIN_PREFIX = "/wp-json/custom/v1"

    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        application_password: str,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        site_url = base_url.rstrip("/")
        if site_url.endswith(self.WP_PREFIX):
            site_url = site_url[: -len(self.WP_PREFIX)]
        self.site_url = site_url
        self._wp_auth = (username, application_password)
        if consumer_key and consumer_secret:
            self._wc_auth = (consumer_key, consumer_secret)
        else:
            self._wc_auth = self._wp_auth
        self._timeout = timeout
        self._transport = transport

    async def clone_many(
        self,
        ids: Sequence[PostId],
        target_language: str,
    ) -> StoreCloneResponse:
        data = await self._request(
            "POST",
            f"{self.PLUGIN_PREFIX}/batch-clone-posts",
            json={"post_ids": list(ids), "target_lang": target_language},
        )
        if not isinstance(data, dict):
            raise ContentStoreError("Batch cloning via custom endpoint failed.")

        response = StoreCloneResponse()
        for entry in data.get("success") or []:
            response.success.append(
                ClonePair(
                    original_id=entry.get("original_id"),
                    clone_id=entry.get("clone_id"),
                    post_type=entry.get("post_type"),
                )
            )
        for entry in data.get("failed") or []:
            response.failed.append(
                CloneFailure(
                    id=entry.get("id"),
                    reason=str(entry.get("reason") or "Unknown error"),
                )
            )
        return response

    async def get_full(
        self,
        item_id: PostId,
        *,
        post_type: str | None = None,
    ) -> ContentItem:
        if post_type == "product":
            data = await self._request(
                "GET",
                f"{self.WC_PREFIX}/products/{item_id}",
                auth=self._wc_auth,
            )
            return self._product_from_payload(data)

        resolved_type, data = await self._fetch_post(item_id, post_type)
        return self._post_from_payload(data, resolved_type)

    async def update(
        self,
        item_id: PostId,
        update: ContentUpdate,
        *,
        post_type: str | None = None,
    ) -> None:
        if post_type == "product":
            payload: Dict[str, Any] = dict(update.extra_blocks)
            if update.title is not None:
                payload["name"] = update.title
            if update.body is not None:
                payload["description"] = update.body
            if update.sku is not None:
                payload["sku"] = update.sku
            if update.status is not None:
                payload["status"] = update.status
            await self._request(
                "PUT",
                f"{self.WC_PREFIX}/products/{item_id}",
                json=payload,
                auth=self._wc_auth,
            )
            return

        payload = {}
        if update.title is not None:
            payload["title"] = update.title
        if update.body is not None:
            payload["content"] = update.body
        if update.status is not None:
            payload["status"] = update.status
        if update.document is not None:
            payload["meta"] = {ELEMENTOR_META_KEY: serialize_document(update.document)}
        endpoint = _collection_for(post_type or "post")
        await self._request("POST", f"{self.WP_PREFIX}/{endpoint}/{item_id}", json=payload)

    async def clone_menu(self, menu_id: PostId, target_language: str) -> str:
        data = await self._request(
            "POST",
            f"{self.PLUGIN_PREFIX}/clone-menu",
            json={"menu_id": menu_id, "target_lang": target_language},
        )
        if isinstance(data, dict) and data.get("success"):
            return str(data.get("message") or "Menu cloned.")
        message = data.get("message") if isinstance(data, dict) else None
        raise ContentStoreError(
            message or "The custom menu cloning endpoint failed."
        )

    async def _fetch_post(
        self,
        item_id: PostId,
        post_type: str | None,
    ) -> tuple[str, Dict[str, Any]]:
        candidates = [post_type] if post_type else ["page", "post"]
        for candidate in candidates:
            try:
                data = await self._request(
                    "GET",
                    f"{self.WP_PREFIX}/{_collection_for(candidate)}/{item_id}",
                    params={"context": "edit"},
                )
            except ContentStoreError as exc:
                if exc.status_code != 404:
                    raise
                continue
            return candidate, data
        raise ContentStoreError(
            f"No {' or '.join(candidates)} found with id {item_id}.",
            status_code=404,
        )

    @staticmethod
    def _post_from_payload(data: Dict[str, Any], post_type: str) -> ContentItem:
        meta = data.get("meta") or {}
        if not isinstance(meta, dict):
            meta = {}
        return ContentItem(
            id=data.get("id"),
            post_type=str(data.get("type") or post_type),
            title=_rendered(data.get("title")),
            body=_rendered(data.get("content")),
            document=meta.get(ELEMENTOR_META_KEY) or None,
            status=str(data.get("status") or "publish"),
            meta=meta,
        )

    @staticmethod
    def _product_from_payload(data: Dict[str, Any]) -> ContentItem:
        meta = {
            entry.get("key"): entry.get("value")
            for entry in data.get("meta_data") or []
            if isinstance(entry, dict)
        }
        return ContentItem(
            id=data.get("id"),
            post_type="product",
            title=str(data.get("name") or ""),
            body=str(data.get("description") or ""),
            extra_blocks={
                "short_description": str(data.get("short_description") or "")
            },
            sku=data.get("sku") or None,
            status=str(data.get("status") or "publish"),
            meta=meta,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        auth: tuple[str, str] | None = None,
    ) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.site_url,
                auth=auth or self._wp_auth,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json, params=params)
        except httpx.RequestError as exc:
            raise ContentStoreError(
                f"Network error while calling WordPress: {exc}"
            ) from exc

        if response.status_code >= 400:
            raise ContentStoreError(
                _error_message(response),
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ContentStoreError(
                f"WordPress returned a non-JSON response for {path}."
            ) from exc


def _collection_for(post_type: str) -> str:
    return "pages" if post_type == "page" else "posts"


def _rendered(field_value: Any) -> str:
    if isinstance(field_value, dict):
        raw = field_value.get("raw")
        if isinstance(raw, str):
            return raw
        return str(field_value.get("rendered") or "")
    if isinstance(field_value, str):
        return field_value
    return ""


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"WordPress API call failed ({response.status_code}): {response.text}"
