"""
Website Resolver
Maps a user-facing website id to the warehouse store ids it covers.

A plain website covers its own ``storeId``. A grouped website covers the
store ids of its members, in ``groupedWebsiteIds`` order.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from dashboard.services.document_store import DocumentStore, collection_path

logger = logging.getLogger(__name__)

ALL_COMBINED = "all_combined"


@dataclass(frozen=True)
class AllCombined:
    """Every website of the client; no website predicate is applied."""


@dataclass(frozen=True)
class SpecificWebsite:
    website_id: str


WebsiteScope = Union[AllCombined, SpecificWebsite]


def parse_website_scope(raw: Optional[str]) -> WebsiteScope:
    """None, "" and "all_combined" mean every website."""
    if raw is None:
        return AllCombined()
    raw = raw.strip()
    if not raw or raw == ALL_COMBINED:
        return AllCombined()
    return SpecificWebsite(raw)


def _store_id(doc: dict) -> str:
    return (doc.get("storeId") or "").strip()


class WebsiteResolver:

    def __init__(self, store: DocumentStore, legacy_fallback: bool = False):
        self.store = store
        self.legacy_fallback = legacy_fallback

    def _websites_path(self, client_id: str) -> str:
        return collection_path("clients", client_id, "websites")

    def resolve(self, client_id: str, website_id: str) -> Optional[List[str]]:
        """Return the store ids behind ``website_id``.

        None when the website does not exist, [] when it exists but
        nothing resolves. Misconfigured group members are skipped.
        """
        path = self._websites_path(client_id)
        website = self.store.get_document(path, website_id)
        if website is None:
            return None

        if not website.get("isGrouped"):
            store_id = _store_id(website)
            return [store_id] if store_id else []

        store_ids: List[str] = []
        for member_id in website.get("groupedWebsiteIds") or []:
            member = self.store.get_document(path, member_id)
            if member is None:
                logger.warning(
                    "Grouped website %s/%s: member %s not found, skipping",
                    client_id, website_id, member_id,
                )
                continue
            if member.get("isGrouped"):
                logger.warning(
                    "Grouped website %s/%s: member %s is itself a group, skipping",
                    client_id, website_id, member_id,
                )
                continue
            store_id = _store_id(member)
            if not store_id:
                logger.warning(
                    "Grouped website %s/%s: member %s has no store id, skipping",
                    client_id, website_id, member_id,
                )
                continue
            store_ids.append(store_id)

        if not store_ids:
            logger.warning("Grouped website %s/%s resolved to no stores", client_id, website_id)
        return store_ids

    def resolve_scope(self, client_id: str, scope: WebsiteScope) -> Optional[List[str]]:
        """None means no website filter; [] means an empty report."""
        if isinstance(scope, AllCombined):
            return None

        store_ids = self.resolve(client_id, scope.website_id)
        if store_ids is not None:
            return store_ids

        if self.legacy_fallback:
            logger.warning(
                "Website %s not found for client %s, using it as a raw store id",
                scope.website_id, client_id,
            )
            return [scope.website_id]

        logger.info("Website %s not found for client %s", scope.website_id, client_id)
        return []
