import asyncio
import logging

from pydantic import ValidationError

from zabibu_fresh import config
from zabibu_fresh.errors import (
    ZabibuError,
    Unauthenticated,
    WriteFailed,
    ProfileIncomplete,
    ValidationFailed,
    validation_failed_from,
)
from zabibu_fresh.services.auth.context import ProfileContext
from zabibu_fresh.services.auth.helpers import auth_helpers
from zabibu_fresh.services.auth.schemas import (
    SignUpRequest,
    SignInRequest,
    OtpRequest,
    VerifyOtpRequest,
    PasswordResetRequest,
    ChangePasswordRequest,
    AuthResult,
)
from zabibu_fresh.services.users.users import ProfileService
from zabibu_fresh.utils.notifications import get_signup_message

logger = logging.getLogger(__name__)

PASSWORD_RESET_MESSAGE = "If an account with that email exists, a password reset link has been sent."


def _validated(schema, action, **data):
    try:
        return schema(**data)
    except ValidationError as e:
        raise validation_failed_from(e, action=action)


def _auth_error_detail(e: Exception, fallback: str) -> str:
    return getattr(e, "message", None) or str(e) or fallback


class AuthService:
    """Phone + password authentication against Supabase Auth, with role selection at sign-up"""

    def __init__(self, client, profiles: ProfileService, context: ProfileContext):
        self.client = client
        self.profiles = profiles
        self.context = context

    async def sign_up(self, full_name: str, phone: str, password: str, confirm_password: str, role: str) -> AuthResult:
        user_data = _validated(
            SignUpRequest, "sign up",
            full_name=full_name, phone=phone, password=password,
            confirm_password=confirm_password, role=role,
        )

        try:
            auth_response = await self.client.auth.sign_up({
                "phone": user_data.phone,
                "password": user_data.password,
                "options": {
                    "data": {
                        "full_name": user_data.full_name,
                        "phone": user_data.phone,
                        "role": user_data.role,
                    }
                }
            })
        except Exception as e:
            logger.error(f"Signup error: {str(e)}")
            raise WriteFailed(_auth_error_detail(e, "Signup failed"), action="sign up") from e

        if auth_response.user is None:
            raise WriteFailed("Failed to create user account", action="sign up")

        user_id = auth_helpers.user_id_of(auth_response.user)
        profile = await self._ensure_profile(user_id, user_data.full_name, user_data.phone, user_data.role)

        needs_confirmation = auth_response.session is None
        _, message = get_signup_message(needs_confirmation)
        return AuthResult(
            user_id=user_id,
            phone=user_data.phone,
            has_session=not needs_confirmation,
            needs_confirmation=needs_confirmation,
            profile=profile,
            message=message,
        )

    async def complete_profile(self) -> AuthResult:
        """Retry profile creation for a signed-in user whose profile row is missing"""
        user_id = self.context.require_user(action="complete profile")
        user = self.context.current_user
        metadata = auth_helpers.metadata_of(user)
        role = auth_helpers.role_of(user)
        full_name = metadata.get("full_name")
        phone = metadata.get("phone") or getattr(user, "phone", None)

        if not role or not full_name or not phone:
            raise ProfileIncomplete(
                "Your sign-up details are incomplete. Please contact support.",
                action="complete profile",
                user_id=user_id,
            )

        profile = await self._ensure_profile(user_id, full_name, phone, role, wait=False)
        await self.context.refresh_profile()
        return AuthResult(user_id=user_id, phone=phone, has_session=True, profile=profile)

    async def sign_in(self, email_or_phone: str, password: str) -> AuthResult:
        """Password sign-in; an identifier containing @ is treated as an email"""
        identifier = (email_or_phone or "").strip()
        if "@" in identifier:
            credentials = _validated(SignInRequest, "sign in", email=identifier, password=password)
            login = {"email": credentials.email}
        else:
            credentials = _validated(SignInRequest, "sign in", phone=identifier, password=password)
            login = {"phone": credentials.phone}
        try:
            auth_response = await self.client.auth.sign_in_with_password({
                **login,
                "password": credentials.password,
            })
        except Exception as e:
            logger.error(f"Signin error: {str(e)}")
            raise Unauthenticated(_auth_error_detail(e, "Invalid credentials"), action="sign in") from e

        if auth_response.user is None or auth_response.session is None:
            raise Unauthenticated("Invalid credentials", action="sign in")

        return AuthResult(
            user_id=auth_helpers.user_id_of(auth_response.user),
            phone=credentials.phone,
            email=credentials.email,
            has_session=True,
        )

    async def sign_in_with_otp(self, phone: str) -> str:
        request = _validated(OtpRequest, "send code", phone=phone)
        try:
            await self.client.auth.sign_in_with_otp({"phone": request.phone})
        except Exception as e:
            logger.error(f"OTP signin error: {str(e)}")
            raise WriteFailed(_auth_error_detail(e, "Could not send code"), action="send code") from e
        return f"A verification code has been sent to {request.phone}."

    async def verify_otp(self, phone: str, token: str) -> AuthResult:
        request = _validated(VerifyOtpRequest, "verify code", phone=phone, token=token)
        try:
            auth_response = await self.client.auth.verify_otp({
                "phone": request.phone,
                "token": request.token,
                "type": "sms",
            })
        except Exception as e:
            logger.error(f"OTP verification error: {str(e)}")
            raise Unauthenticated(_auth_error_detail(e, "Invalid or expired code"), action="verify code") from e

        if auth_response.user is None:
            raise Unauthenticated("Invalid or expired code", action="verify code")

        return AuthResult(
            user_id=auth_helpers.user_id_of(auth_response.user),
            phone=request.phone,
            has_session=auth_response.session is not None,
        )

    async def sign_out(self):
        try:
            await self.client.auth.sign_out()
        except Exception as e:
            # The local session is cleared by the auth client regardless
            logger.error(f"Signout error: {str(e)}")

    async def request_password_reset(self, email: str) -> str:
        request = _validated(PasswordResetRequest, "reset password", email=email)
        try:
            await self.client.auth.reset_password_for_email(
                request.email,
                {"redirect_to": config.PASSWORD_RESET_REDIRECT_URL}
            )
        except Exception as e:
            logger.error(f"Password reset email failed: {str(e)}")
        return PASSWORD_RESET_MESSAGE

    async def change_password(self, new_password: str, confirm_password: str) -> str:
        self.context.require_user(action="change password")
        request = _validated(
            ChangePasswordRequest, "change password",
            new_password=new_password, confirm_password=confirm_password,
        )
        try:
            response = await self.client.auth.update_user({"password": request.new_password})
        except Exception as e:
            logger.error(f"Password change failed: {str(e)}")
            raise WriteFailed(_auth_error_detail(e, "Failed to update password"), action="change password") from e

        if getattr(response, "user", None) is None:
            raise WriteFailed("Failed to update password", action="change password")
        return "Password updated successfully."

    async def _ensure_profile(self, user_id: str, full_name: str, phone: str, role: str, wait: bool = True):
        """
        The on-signup trigger normally creates the profile. If it did not,
        create it here; if that keeps failing, surface ProfileIncomplete.
        """
        if wait and config.PROFILE_TRIGGER_WAIT_SECONDS > 0:
            await asyncio.sleep(config.PROFILE_TRIGGER_WAIT_SECONDS)

        last_error = None
        for attempt in range(config.PROFILE_CREATE_RETRIES + 1):
            try:
                profile = await self.profiles.get_profile(user_id)
                if profile is not None:
                    return profile

                logger.info(f"Profile trigger did not run for {user_id}, creating profile (attempt {attempt + 1})")
                return await self.profiles.create_profile(user_id, full_name, phone, role)

            except ValidationFailed:
                raise
            except ZabibuError as e:
                last_error = e
                logger.warning(f"Profile creation attempt {attempt + 1} for {user_id} failed: {e.detail}")

        logger.error(f"Profile creation failed for {user_id} after auth signup succeeded")
        raise ProfileIncomplete(action="sign up", user_id=user_id) from last_error
