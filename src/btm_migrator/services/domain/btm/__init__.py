"""
BizTalk Map Domain

Handles reading .btm documents:
- Schema and namespace discovery (inline references and auxiliary XSDs)
- Functoid and link parsing
- Functoid graph resolution
"""

from .parser import BtmParser, MapParseError
from .resolver import RelationshipResolver

__all__ = [
    "BtmParser",
    "MapParseError",
    "RelationshipResolver",
]
