from __future__ import annotations

from pydantic import BaseModel, ConfigDict


# Field names are the wire names: DynamoDB attribute names and JSON keys.
class EntityDraft(BaseModel):
    """Caller-supplied attributes for insert/update; every field is required."""

    model_config = ConfigDict(extra="forbid")

    fullname: str
    email: str
    authoredRecipes: list[str]
    likedRecipes: list[str]


class Entity(BaseModel):
    # Stored items may carry attributes written by other tools; ignore them.
    model_config = ConfigDict(extra="ignore")

    id: str
    fullname: str
    email: str
    authoredRecipes: list[str]
    likedRecipes: list[str]

    @classmethod
    def from_draft(cls, entity_id: str, draft: EntityDraft) -> "Entity":
        return cls(id=entity_id, **draft.model_dump())


class EntityPage(BaseModel):
    items: list[Entity]
    nextToken: str | None = None
