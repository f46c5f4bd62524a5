"""Helpers for translating PostgreSQL integrity violations.

Inserts that race on a uniqueness rule run inside a SAVEPOINT; when the
database rejects them the repo looks up which named constraint fired and
raises the matching domain ConflictError instead.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError


def violated_constraint(exc: IntegrityError) -> str | None:
    """Name of the constraint behind ``exc``, when the driver reports one."""
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return name
    return None


def violates(exc: IntegrityError, constraint: str) -> bool:
    name = violated_constraint(exc)
    if name is not None:
        return name == constraint
    # fall back to the server message: ... violates unique constraint "name"
    return f'"{constraint}"' in str(exc.orig)
