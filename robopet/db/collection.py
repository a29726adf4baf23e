"""Saved robot pets (the player's collection)."""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from robopet.db.storage import NamespacedStore
from robopet.models.device import Customization, PetType, RobotPet

logger = logging.getLogger(__name__)

_PREFIX = "collection:"


class CollectionRecord(BaseModel):
    id: str
    name: str
    type: PetType
    customizations: list[Customization] = []
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_pet(cls, pet: RobotPet) -> "CollectionRecord":
        return cls(
            id=pet.id,
            name=pet.name,
            type=pet.pet_type,
            customizations=list(pet.customizations),
            created_at=pet.created_at,
            last_modified=datetime.now(timezone.utc),
        )


class PetCollection:
    def __init__(self, store: NamespacedStore):
        self.store = store

    def save(self, pet: RobotPet | CollectionRecord) -> bool:
        """Save or replace a pet by id."""
        record = pet if isinstance(pet, CollectionRecord) else CollectionRecord.from_pet(pet)
        ok = self.store.write(f"{_PREFIX}{record.id}", record)
        if ok:
            logger.info("Saved pet %s to collection", record.id)
        return ok

    def get(self, pet_id: str) -> CollectionRecord | None:
        return self.store.read_model(f"{_PREFIX}{pet_id}", CollectionRecord)

    def list(self) -> list[CollectionRecord]:
        records = []
        for key in self.store.keys(_PREFIX):
            record = self.store.read_model(key, CollectionRecord)
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.created_at)
        return records

    def remove(self, pet_id: str) -> bool:
        return self.store.delete(f"{_PREFIX}{pet_id}")
