import logging
from typing import Optional

from pydantic import ValidationError

from zabibu_fresh.errors import (
    ZabibuError,
    RemoteFetchFailed,
    WriteFailed,
    Unauthorized,
    validation_failed_from,
)
from zabibu_fresh.services.users.schemas import (
    UserProfileCreate,
    UserProfileUpdate,
    UserProfileResponse,
)
from zabibu_fresh.utils.response_helpers import first_row, safe_model_validate

logger = logging.getLogger(__name__)

PROFILE_TABLE = "User"
PROFILE_COLUMNS = "id, fullName, phone, role, createdAt"


class ProfileService:
    """Reads and writes the application profile row that mirrors the auth user"""

    def __init__(self, client):
        self.client = client

    async def get_profile(self, user_id: str) -> Optional[UserProfileResponse]:
        """Profile for user_id, or None when the row does not exist yet"""
        if not user_id:
            return None
        try:
            response = await (
                self.client.table(PROFILE_TABLE)
                .select(PROFILE_COLUMNS)
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
            return safe_model_validate(UserProfileResponse, first_row(response))

        except ZabibuError:
            raise
        except Exception as e:
            logger.error(f"Error fetching user profile {user_id}: {str(e)}")
            raise RemoteFetchFailed("Could not load your profile", action="load profile") from e

    async def create_profile(self, user_id: str, full_name: str, phone: str, role: str) -> UserProfileResponse:
        try:
            profile_data = UserProfileCreate(id=user_id, full_name=full_name, phone=phone, role=role)
        except ValidationError as e:
            raise validation_failed_from(e, action="create profile")

        try:
            response = await self.client.table(PROFILE_TABLE).insert(profile_data.to_row()).execute()
            row = first_row(response)
            if row is None:
                raise WriteFailed("Profile was not returned after insert", action="create profile")

            logger.info(f"Created profile for user {user_id} with role {role}")
            return UserProfileResponse.model_validate(row)

        except ZabibuError:
            raise
        except Exception as e:
            logger.error(f"Error creating user profile {user_id}: {str(e)}")
            raise WriteFailed("Could not create your profile", action="create profile") from e

    async def update_profile(self, user_id: str, profile_data: UserProfileUpdate) -> Optional[UserProfileResponse]:
        """Update fullName/phone; returns None when there is nothing to update"""
        if not user_id:
            raise Unauthorized("User ID is required to update profile", action="update profile")

        updates = profile_data.to_row(exclude_none=True)
        if not updates:
            logger.warning("No allowed fields provided for profile update.")
            return None

        try:
            response = await (
                self.client.table(PROFILE_TABLE)
                .update(updates)
                .eq("id", user_id)
                .execute()
            )
            row = first_row(response)
            if row is None:
                raise WriteFailed("Profile not found or not editable", action="update profile")
            return UserProfileResponse.model_validate(row)

        except ZabibuError:
            raise
        except Exception as e:
            logger.error(f"Error updating user profile {user_id}: {str(e)}")
            raise WriteFailed("Could not update your profile", action="update profile") from e
