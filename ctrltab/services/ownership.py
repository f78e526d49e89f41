from __future__ import annotations

import logging

from ctrltab.models import Collection, Link, Section
from ctrltab.services.errors import AuthorizationError, NotFoundError

log = logging.getLogger(__name__)

# child model -> (parent model, foreign key column pointing at the parent)
OWNERSHIP_CHAIN = {
    Link: (Section, Link.section_id),
    Section: (Collection, Section.collection_id),
}

ENTITY_LABELS = {
    Collection: "collection",
    Section: "section",
    Link: "link",
}


class OwnershipResolver:
    """Decides whether a user owns an entity by walking up to its collection.

    Collections carry ``user_id`` directly; sections and links reach it through
    their parents. Children never store an owner of their own.
    """

    def __init__(self, session):
        self.session = session

    def _chain_query(self, model, entity_id: int, *entities):
        query = self.session.query(*entities).select_from(model)
        current = model
        while current in OWNERSHIP_CHAIN:
            parent, foreign_key = OWNERSHIP_CHAIN[current]
            query = query.join(parent, foreign_key == parent.id)
            current = parent
        return query.filter(model.id == entity_id)

    def owner_of(self, model, entity_id: int) -> int | None:
        row = self._chain_query(model, entity_id, Collection.user_id).first()
        return row[0] if row else None

    def owns(self, model, entity_id: int, user_id: int) -> bool:
        owner_id = self.owner_of(model, entity_id)
        return owner_id is not None and owner_id == user_id

    def owns_collection(self, collection_id: int, user_id: int) -> bool:
        return self.owns(Collection, collection_id, user_id)

    def owns_section(self, section_id: int, user_id: int) -> bool:
        return self.owns(Section, section_id, user_id)

    def owns_link(self, link_id: int, user_id: int) -> bool:
        return self.owns(Link, link_id, user_id)

    def require(self, model, entity_id: int, user_id: int):
        """Return the entity when ``user_id`` owns it, else raise a 404-class error."""
        label = ENTITY_LABELS[model]
        row = self._chain_query(model, entity_id, model, Collection.user_id).first()
        if row is None:
            raise NotFoundError(f"{label} not found")
        entity, owner_id = row
        if owner_id != user_id:
            log.debug(
                "denied %s %s to user %s (owner %s)",
                label,
                entity_id,
                user_id,
                owner_id,
            )
            raise AuthorizationError(f"{label} not found")
        return entity