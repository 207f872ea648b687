"""
Table-driven mapping from domain events to the cached result sets they stale.

Each entity family owns an ordered list of group rules. A rule is a template of
cache-key tokens in which the placeholders below are replaced by ids taken from
the event; rules whose required relation is absent are skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from cache.query_cache import CacheFacade
from events.schemas import ASSET_ID, COMPONENT_ID, CacheKeyGroup, DomainEvent, EntityFamily

logger = logging.getLogger(__name__)

ASSETS = "assets"
COMPONENTS = "components"
PARTS = "parts"
SERVICE = "service"
SERVICE_RECORDS = "service-records"
TASKS = "tasks"

# Template placeholders.
SUBJECT = ":subject"
ASSET = ":asset"
COMPONENT = ":component"


@dataclass(frozen=True, slots=True)
class GroupRule:
    """One cache-key group template, optionally gated on a relation id."""

    template: Tuple[str, ...]
    requires: Optional[str] = None


def _always(*template: str) -> GroupRule:
    return GroupRule(template)


def _with_asset(*template: str) -> GroupRule:
    return GroupRule(template, requires=ASSET_ID)


def _with_component(*template: str) -> GroupRule:
    return GroupRule(template, requires=COMPONENT_ID)


ROUTING_TABLE: Dict[EntityFamily, Tuple[GroupRule, ...]] = {
    EntityFamily.ASSET: (
        _always(ASSETS),
        _always(ASSETS, SUBJECT),
        _always(ASSETS, SUBJECT, COMPONENTS),
        _always(ASSETS, SUBJECT, PARTS),
        _always(ASSETS, SUBJECT, SERVICE),
        _always(ASSETS, SUBJECT, TASKS),
        _always(SERVICE_RECORDS),
    ),
    EntityFamily.COMPONENT: (
        _always(COMPONENTS),
        _always(COMPONENTS, SUBJECT),
        _always(COMPONENTS, SUBJECT, PARTS),
        _with_asset(ASSETS, ASSET, COMPONENTS),
        _with_asset(ASSETS, ASSET),
    ),
    EntityFamily.PART: (
        _always(PARTS),
        _always(PARTS, SUBJECT),
    ),
    EntityFamily.ALLOCATION: (
        _with_asset(ASSETS, ASSET, PARTS),
        _with_asset(ASSETS, ASSET),
        _with_component(COMPONENTS, COMPONENT, PARTS),
        _with_component(COMPONENTS, COMPONENT),
        _always(PARTS),
    ),
    EntityFamily.SERVICE_RECORD: (
        _always(SERVICE_RECORDS),
        _always(SERVICE_RECORDS, SUBJECT),
        _with_asset(ASSETS, ASSET),
        _with_asset(ASSETS, ASSET, SERVICE),
        _with_asset(ASSETS),
    ),
    EntityFamily.TASK: (
        _with_asset(ASSETS, ASSET, TASKS),
        _with_asset(ASSETS, ASSET),
        _with_asset(ASSETS),
    ),
}


class InvalidationRouter:
    """
    Resolve the ordered cache-key groups a domain event invalidates.

    Routing is pure: the same event always yields the same groups in the same
    order. Families missing from the table (the connection sentinel) yield none.
    """

    def __init__(self, table: Optional[Mapping[EntityFamily, Sequence[GroupRule]]] = None) -> None:
        self._table = dict(table if table is not None else ROUTING_TABLE)

    def route(self, event: DomainEvent) -> List[CacheKeyGroup]:
        rules = self._table.get(event.family, ())
        groups: List[CacheKeyGroup] = []
        for rule in rules:
            if rule.requires and not event.related_ids.get(rule.requires):
                continue
            group = self._expand(rule.template, event)
            if group is None:
                logger.debug("Skipping %s rule %s: missing id", event.kind.value, rule.template)
                continue
            if group not in groups:
                groups.append(group)
        return groups

    def invalidate(self, event: DomainEvent, cache: CacheFacade) -> List[CacheKeyGroup]:
        """Invalidate every routed group on ``cache`` in table order and return them."""
        groups = self.route(event)
        for group in groups:
            cache.invalidate(group)
        return groups

    @staticmethod
    def _expand(template: Sequence[str], event: DomainEvent) -> Optional[CacheKeyGroup]:
        values = {
            SUBJECT: event.subject_id,
            ASSET: event.asset_id,
            COMPONENT: event.component_id,
        }
        tokens: List[str] = []
        for token in template:
            if token in values:
                value = values[token]
                if not value:
                    return None
                tokens.append(value)
            else:
                tokens.append(token)
        return tuple(tokens)


_DEFAULT_ROUTER = InvalidationRouter()


def route_event(event: DomainEvent) -> List[CacheKeyGroup]:
    """Route ``event`` through the default routing table."""
    return _DEFAULT_ROUTER.route(event)
