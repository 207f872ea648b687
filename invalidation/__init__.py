"""
Invalidation routing for live-update events.
"""

from .router import ROUTING_TABLE, GroupRule, InvalidationRouter, route_event

__all__ = ["ROUTING_TABLE", "GroupRule", "InvalidationRouter", "route_event"]
