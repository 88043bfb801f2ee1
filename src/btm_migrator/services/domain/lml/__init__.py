"""
Logic Apps Mapping Language Domain

Translates a parsed map into a mapping forest and renders it as LML text.
"""

from .emitter import LmlEmitter
from .translator import MapTranslator

__all__ = ["LmlEmitter", "MapTranslator"]
