from typing import Optional

from src.application.ports import ProfileRepositoryPort
from src.domain.models import UserProfile
from src.infrastructure.storage.json_store import JsonFileStore


class JsonProfileRepository(ProfileRepositoryPort):
    """User profiles keyed by user id. Profiles are created at signup, outside this package."""

    def __init__(self, storage_path: str):
        self.store = JsonFileStore(storage_path)

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        row = self.store.read().get(user_id)
        if row is None:
            return None
        return UserProfile.model_validate(row)

    def upsert_profile(self, user_id: str, profile: UserProfile) -> UserProfile:
        with self.store.transaction() as rows:
            rows[user_id] = profile.model_dump(mode="json")
        return profile
