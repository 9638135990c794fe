"""
Profile/Role context shared by every service.

One writer (the auth-state-change handler plus explicit refreshes), many
readers. Role-derived flags stay ``None`` until the profile has resolved so a
role-gated control is never shown on a guess.
"""
import asyncio
import logging
from typing import Any, Callable, List, Optional

from zabibu_fresh.errors import Unauthenticated, ZabibuError
from zabibu_fresh.services.auth.helpers import auth_helpers
from zabibu_fresh.services.users.schemas import UserProfileResponse
from zabibu_fresh.services.users.users import ProfileService

logger = logging.getLogger(__name__)


class ProfileContext:

    def __init__(self, profiles: ProfileService):
        self.profiles = profiles
        self.session: Any = None
        self.current_user: Any = None
        self.current_profile: Optional[UserProfileResponse] = None
        self.resolved = False
        self.profile_error: Optional[ZabibuError] = None
        self._listeners: List[Callable[["ProfileContext"], None]] = []
        self._subscription = None
        self._pending: set = set()
        self._generation = 0

    # Readers

    @property
    def user_id(self) -> Optional[str]:
        return auth_helpers.user_id_of(self.current_user)

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    @property
    def user_role(self) -> Optional[str]:
        if self.current_profile is None:
            return None
        return self.current_profile.role

    @property
    def is_seller(self) -> Optional[bool]:
        if not self.resolved or self.current_profile is None:
            return None
        return self.current_profile.role == "seller"

    @property
    def is_buyer(self) -> Optional[bool]:
        if not self.resolved or self.current_profile is None:
            return None
        return self.current_profile.role == "buyer"

    @property
    def is_phone_confirmed(self) -> bool:
        return self.current_user is not None and auth_helpers.phone_confirmed(self.current_user)

    @property
    def user_phone(self) -> Optional[str]:
        if self.current_profile is not None and self.current_profile.phone:
            return self.current_profile.phone
        return getattr(self.current_user, "phone", None) or None

    @property
    def profile_missing(self) -> bool:
        """Signed in, profile lookup finished, but no profile row: onboarding is incomplete"""
        return self.resolved and self.is_authenticated and self.current_profile is None and self.profile_error is None

    def require_user(self, action: str = None) -> str:
        user_id = self.user_id
        if user_id is None:
            raise Unauthenticated(action=action)
        return user_id

    def add_listener(self, listener: Callable[["ProfileContext"], None]):
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # Writers

    async def initialize(self):
        """Resolve the stored session once at startup"""
        try:
            session = await self.profiles.client.auth.get_session()
        except Exception as e:
            logger.error(f"Error fetching session on load: {str(e)}")
            session = None
        await self._resolve(session)

    async def handle_auth_change(self, event: str, session: Any):
        logger.info(f"Auth state changed: {event}")
        await self._resolve(session)

    async def refresh_profile(self):
        if self.current_user is None:
            return
        await self._resolve(self.session)

    def attach(self, auth):
        """Subscribe to auth state changes; callbacks are scheduled on the running loop"""
        def on_change(event, session):
            loop = asyncio.get_running_loop()
            task = loop.create_task(self.handle_auth_change(str(event), session))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        self._subscription = auth.on_auth_state_change(on_change)
        return self._subscription

    def detach(self):
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        for task in list(self._pending):
            task.cancel()

    async def _resolve(self, session: Any):
        # Auth events can overlap; only the latest resolve may write the profile
        self._generation += 1
        generation = self._generation

        self.resolved = False
        self.session = session
        self.current_user = auth_helpers.user_of(session)
        self.current_profile = None
        self.profile_error = None

        user_id = self.user_id
        if user_id is not None:
            profile, error = None, None
            try:
                profile = await self.profiles.get_profile(user_id)
            except ZabibuError as e:
                error = e

            if generation != self._generation:
                logger.debug(f"Discarding stale profile lookup for {user_id}")
                return

            self.current_profile = profile
            if error is not None:
                logger.error(f"Error resolving profile for {user_id}: {error.detail}")
                self.profile_error = error
            elif profile is None:
                logger.warning(f"User {user_id} is signed in but has no profile row")

        self.resolved = True
        for listener in list(self._listeners):
            listener(self)
