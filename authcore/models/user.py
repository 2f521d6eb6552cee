"""
User Model.

Immutable account value returned by the backend.  The session core
replaces it wholesale on every login, refresh or profile reload and
never mutates individual fields.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """Represents the signed-in account.

    Timestamps are kept as the backend's ISO strings because different
    backend revisions emit different precisions.
    """

    id: str
    email: str
    full_name: str
    is_active: bool = True
    is_verified: bool = False
    created_at: str
    last_login: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="ignore")
