"""Access-control predicates for documents, annotations and replies.

Every function here is pure: it looks only at already-loaded entities and the
viewer, never at the database. Entities are duck-typed so the same checks work
against ORM rows and plain test doubles:

* documents expose ``owner_id`` and ``is_public``
* annotations expose ``author_id`` and ``is_private``
* replies expose ``author_id``
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import AuthenticationError

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Viewer:
    """Identity of whoever issued the request; ``id`` is ``None`` for anonymous callers."""

    id: Optional[uuid.UUID] = None
    role: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.id is None

    @property
    def is_admin(self) -> bool:
        return not self.is_anonymous and self.role == ADMIN_ROLE

    def is_user(self, user_id: Optional[uuid.UUID]) -> bool:
        return not self.is_anonymous and user_id is not None and self.id == user_id


ANONYMOUS = Viewer()


def is_owner(document: Any, viewer: Viewer) -> bool:
    return viewer.is_user(document.owner_id)


def can_view(document: Any, viewer: Viewer) -> bool:
    return bool(document.is_public) or is_owner(document, viewer)


def can_mutate_document(document: Any, viewer: Viewer) -> bool:
    return is_owner(document, viewer) or viewer.is_admin


def can_view_annotation(annotation: Any, document: Any, viewer: Viewer) -> bool:
    if not can_view(document, viewer):
        return False
    return not annotation.is_private or is_owner(document, viewer)


def can_reply(annotation: Any, document: Any, viewer: Viewer) -> bool:
    return can_view(document, viewer) and not annotation.is_private


def can_edit_annotation(annotation: Any, viewer: Viewer) -> bool:
    # content edits stay with the author, admins may only delete
    return viewer.is_user(annotation.author_id)


def can_mutate_annotation(annotation: Any, viewer: Viewer) -> bool:
    return viewer.is_user(annotation.author_id) or viewer.is_admin


def can_delete_reply(reply: Any, annotation: Any, viewer: Viewer) -> bool:
    return (
        viewer.is_user(reply.author_id)
        or viewer.is_user(annotation.author_id)
        or viewer.is_admin
    )


def require_identity(viewer: Viewer) -> uuid.UUID:
    if viewer.id is None:
        raise AuthenticationError()
    return viewer.id
