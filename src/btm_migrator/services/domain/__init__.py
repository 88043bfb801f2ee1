"""
Domain Layer

Map conversion logic, organized by the format each package reads or writes.
Domain services work on in-memory documents; file handling for whole
conversions lives in the handlers layer.

Domains:
- btm: BizTalk map parsing and functoid graph resolution
- lml: Functoid translation, loop materialization and LML emission
"""
