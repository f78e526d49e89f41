from __future__ import annotations

from ctrltab.models import Collection, Link, Section
from ctrltab.services.common import clean_text, optional_int
from ctrltab.services.errors import ValidationError
from ctrltab.services.favicons import FaviconResolver
from ctrltab.services.ordering import (
    COLLECTIONS,
    LINKS,
    SECTIONS,
    OrderingEngine,
)
from ctrltab.services.ownership import OwnershipResolver


def _required_text(payload: dict, field: str) -> str:
    value = clean_text(payload.get(field))
    if not value:
        raise ValidationError(f"{field} is required")
    return value


def _patch_required_text(entity, changes: dict, field: str) -> None:
    """``None`` leaves the value alone; a blank string is rejected."""
    if changes.get(field) is None:
        return
    value = clean_text(changes[field])
    if not value:
        raise ValidationError(f"{field} cannot be empty")
    setattr(entity, field, value)


def _patch_sort_order(entity, changes: dict) -> None:
    sort_order = optional_int(changes.get("sort_order"), "sort_order")
    if sort_order is not None:
        entity.sort_order = sort_order


class EntityStore:
    """Collections, sections and links of one user, always ownership-checked."""

    def __init__(
        self,
        session,
        favicons: FaviconResolver,
        ownership: OwnershipResolver | None = None,
        ordering: OrderingEngine | None = None,
    ):
        self.session = session
        self.favicons = favicons
        self.ownership = ownership or OwnershipResolver(session)
        self.ordering = ordering or OrderingEngine(session)

    def _save(self, entity=None):
        if entity is not None:
            self.session.add(entity)
        self.session.commit()
        return entity

    # collections

    def list_collections(self, user_id: int) -> list[Collection]:
        return self.ordering.siblings(COLLECTIONS, user_id)

    def create_collection(self, user_id: int, payload: dict) -> Collection:
        collection = Collection(
            user_id=user_id,
            name=_required_text(payload, "name"),
            icon=clean_text(payload.get("icon")) or None,
            sort_order=self.ordering.next_order(COLLECTIONS, user_id),
        )
        return self._save(collection)

    def update_collection(
        self, collection_id: int, user_id: int, changes: dict
    ) -> Collection:
        collection = self.ownership.require(Collection, collection_id, user_id)
        _patch_required_text(collection, changes, "name")
        if "icon" in changes:
            collection.icon = clean_text(changes.get("icon")) or None
        _patch_sort_order(collection, changes)
        return self._save(collection)

    def delete_collection(self, collection_id: int, user_id: int) -> None:
        collection = self.ownership.require(Collection, collection_id, user_id)
        self.session.delete(collection)
        self._save()

    def reorder_collections(self, user_id: int, ordered_ids) -> int:
        return self.ordering.reorder(COLLECTIONS, user_id, ordered_ids)

    # sections

    def list_sections(self, collection_id: int, user_id: int) -> list[Section]:
        self.ownership.require(Collection, collection_id, user_id)
        return self.ordering.siblings(SECTIONS, collection_id)

    def create_section(
        self, collection_id: int, user_id: int, payload: dict
    ) -> Section:
        self.ownership.require(Collection, collection_id, user_id)
        section = Section(
            collection_id=collection_id,
            name=_required_text(payload, "name"),
            sort_order=self.ordering.next_order(SECTIONS, collection_id),
        )
        return self._save(section)

    def update_section(self, section_id: int, user_id: int, changes: dict) -> Section:
        section = self.ownership.require(Section, section_id, user_id)
        _patch_required_text(section, changes, "name")
        _patch_sort_order(section, changes)
        return self._save(section)

    def delete_section(self, section_id: int, user_id: int) -> None:
        section = self.ownership.require(Section, section_id, user_id)
        self.session.delete(section)
        self._save()

    def reorder_sections(self, collection_id: int, user_id: int, ordered_ids) -> int:
        self.ownership.require(Collection, collection_id, user_id)
        return self.ordering.reorder(SECTIONS, collection_id, ordered_ids)

    # links

    def list_links(self, section_id: int, user_id: int) -> list[Link]:
        self.ownership.require(Section, section_id, user_id)
        return self.ordering.siblings(LINKS, section_id)

    def create_link(self, section_id: int, user_id: int, payload: dict) -> Link:
        self.ownership.require(Section, section_id, user_id)
        title = clean_text(payload.get("title"))
        url = clean_text(payload.get("url"))
        if not title or not url:
            raise ValidationError("title and url are required")
        link = Link(
            section_id=section_id,
            title=title,
            url=url,
            favicon=self.favicons.resolve(url, payload.get("favicon")),
            sort_order=self.ordering.next_order(LINKS, section_id),
        )
        return self._save(link)

    def update_link(self, link_id: int, user_id: int, changes: dict) -> Link:
        link = self.ownership.require(Link, link_id, user_id)
        _patch_required_text(link, changes, "title")
        _patch_required_text(link, changes, "url")
        if "favicon" in changes:
            # An empty favicon asks for a fresh lookup against the current url.
            link.favicon = self.favicons.resolve(link.url, changes.get("favicon"))
        _patch_sort_order(link, changes)
        return self._save(link)

    def delete_link(self, link_id: int, user_id: int) -> None:
        link = self.ownership.require(Link, link_id, user_id)
        self.session.delete(link)
        self._save()

    def reorder_links(self, section_id: int, user_id: int, ordered_ids) -> int:
        self.ownership.require(Section, section_id, user_id)
        return self.ordering.reorder(LINKS, section_id, ordered_ids)

    # dashboard

    def get_dashboard(self, collection_id: int, user_id: int) -> dict:
        collection = self.ownership.require(Collection, collection_id, user_id)
        payload = collection.as_dict()
        payload["sections"] = []
        for section in self.ordering.siblings(SECTIONS, collection.id):
            section_payload = section.as_dict()
            section_payload["links"] = [
                link.as_dict() for link in self.ordering.siblings(LINKS, section.id)
            ]
            payload["sections"].append(section_payload)
        return payload
