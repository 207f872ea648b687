"""
Domain events pushed by the fleet server and the decoder that produces them.
"""

from .schemas import CacheKeyGroup, DomainEvent, EntityFamily, EventKind  # noqa: F401
from .decoder import FrameDecodeError, decode_frame, parse_frame  # noqa: F401
