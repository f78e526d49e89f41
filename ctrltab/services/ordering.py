from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func

from ctrltab.models import Collection, Link, Section
from ctrltab.services.common import whole_int
from ctrltab.services.errors import ValidationError


@dataclass(frozen=True)
class SiblingGroup:
    """Entities sharing one parent; ``sort_order`` is scoped to the group."""

    model: type
    parent_column: str

    @property
    def parent(self):
        return getattr(self.model, self.parent_column)


COLLECTIONS = SiblingGroup(Collection, "user_id")
SECTIONS = SiblingGroup(Section, "collection_id")
LINKS = SiblingGroup(Link, "section_id")


def parse_ordered_ids(raw) -> list[int]:
    if not isinstance(raw, list):
        raise ValidationError("order must be a list of ids")
    ids: list[int] = []
    for item in raw:
        try:
            ids.append(whole_int(item))
        except (TypeError, ValueError):
            raise ValidationError("order must be a list of ids") from None
    return ids


def ordered(query, model):
    return query.order_by(model.sort_order.asc(), model.id.asc())


class OrderingEngine:
    def __init__(self, session):
        self.session = session

    def next_order(self, group: SiblingGroup, parent_id: int) -> int:
        """Position after the current last sibling; gaps are never filled."""
        value = (
            self.session.query(func.coalesce(func.max(group.model.sort_order), -1) + 1)
            .filter(group.parent == parent_id)
            .scalar()
        )
        return int(value or 0)

    def siblings(self, group: SiblingGroup, parent_id: int):
        query = self.session.query(group.model).filter(group.parent == parent_id)
        return ordered(query, group.model).all()

    def reorder(self, group: SiblingGroup, parent_id: int, ordered_ids) -> int:
        """Set ``sort_order`` to each id's index, in a single transaction.

        Ids outside the group are skipped but still consume their index.
        Siblings missing from ``ordered_ids`` keep their previous position.
        Returns the number of rows moved.
        """
        ids = parse_ordered_ids(ordered_ids)
        moved = 0
        try:
            for index, entity_id in enumerate(ids):
                moved += (
                    self.session.query(group.model)
                    .filter(group.model.id == entity_id, group.parent == parent_id)
                    .update({"sort_order": index}, synchronize_session="fetch")
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return moved
