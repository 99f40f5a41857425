"""Repository for user digest profiles (users container, partitioned by id)."""

from azure.cosmos import ContainerProxy
from azure.cosmos.exceptions import CosmosResourceNotFoundError

from marginalia.db import get_users_container
from marginalia.models import DigestPreferencesUpdate, UserProfile


class UserNotFoundError(Exception):
    """Raised when a user document is not found."""

    pass


class UserRepository:
    """Repository for user profile operations."""

    def __init__(self, container: ContainerProxy | None = None):
        self._container = container

    @property
    def container(self) -> ContainerProxy:
        if self._container is None:
            self._container = get_users_container()
        return self._container

    def get_by_id(self, user_id: str) -> UserProfile:
        try:
            item = self.container.read_item(item=user_id, partition_key=user_id)
        except CosmosResourceNotFoundError:
            raise UserNotFoundError(f"User with ID {user_id} not found")
        return UserProfile(**item)

    def list_digest_enabled(self) -> list[UserProfile]:
        """Users whose digest is enabled (a missing flag counts as enabled)."""
        items = self.container.query_items(
            query="SELECT * FROM c WHERE NOT IS_DEFINED(c.digestEnabled) OR c.digestEnabled != false",
            enable_cross_partition_query=True,
        )
        return [UserProfile(**item) for item in items]

    def update_preferences(self, user_id: str, update: DigestPreferencesUpdate) -> UserProfile:
        """Set only the provided preference fields."""
        operations = [
            {"op": "set", "path": f"/{key}", "value": value}
            for key, value in update.model_dump(exclude_unset=True, exclude_none=True).items()
        ]
        if not operations:
            return self.get_by_id(user_id)
        try:
            item = self.container.patch_item(
                item=user_id,
                partition_key=user_id,
                patch_operations=operations,
            )
        except CosmosResourceNotFoundError:
            raise UserNotFoundError(f"User with ID {user_id} not found")
        return UserProfile(**item)

    def mark_digest_sent(self, user_id: str, sent_at_iso: str) -> None:
        self.container.patch_item(
            item=user_id,
            partition_key=user_id,
            patch_operations=[{"op": "set", "path": "/lastDigestSentAt", "value": sent_at_iso}],
        )


# Singleton instance
_user_repository: UserRepository | None = None


def get_user_repository() -> UserRepository:
    """Get the user repository singleton."""
    global _user_repository
    if _user_repository is None:
        _user_repository = UserRepository()
    return _user_repository
