from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class APIModel(BaseModel):
    """Base model with ORM support enabled."""

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class WireModel(BaseModel):
    """Base model for backend payloads: accepts aliases, keeps unknown keys."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", protected_namespaces=())
