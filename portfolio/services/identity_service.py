"""Identity service - Supabase Auth sign-up/sign-in glued to profiles and the session cache.

Plain sign-up never joins an agency: the very first profile becomes the super
admin and every later one a viewer without an agency. Joining an agency always
goes through an invitation.
"""

from typing import Any, Callable, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError
from supabase import AuthError

from portfolio.models.agency import Agency
from portfolio.models.invitation import normalize_email
from portfolio.models.role import Role
from portfolio.models.user_profile import Identity, SignUpRequest, UserProfile
from portfolio.services.invitation_manager import InvitationManager
from portfolio.services.policy_engine import is_super_admin, profile_field
from portfolio.services.session_cache import SIGNED_OUT, SessionCache, SessionState, get_session_cache
from portfolio.services.storage import AGENCIES, USER_PROFILES, Store, get_store
from portfolio.services.supabase_client import get_supabase_client
from portfolio.utils.clock import utcnow
from portfolio.utils.errors import (
    EmailMismatch,
    NotFound,
    PermissionDenied,
    PortfolioError,
    Unavailable,
    translate_auth_error,
    validation_error_from,
)
from portfolio.utils.logging import get_structured_logger, mask_email, mask_user_id, timed
from portfolio.utils.retry import RetryPolicy, retry_async

logger = get_structured_logger(__name__)

# Auth events that carry a (possibly new) signed-in user
REFRESH_EVENTS = frozenset({"SIGNED_IN", "TOKEN_REFRESHED", "USER_UPDATED", "INITIAL_SESSION"})


def _validate_sign_up(email: str, password: str, name: str) -> SignUpRequest:
    try:
        return SignUpRequest(email=email, password=password, name=(name or "").strip())
    except PydanticValidationError as e:
        raise validation_error_from(e) from e


class IdentityService:
    def __init__(
        self,
        store: Optional[Store] = None,
        auth: Any = None,
        cache: Optional[SessionCache] = None,
        invitations: Optional[InvitationManager] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Optional[Callable] = None,
    ):
        self._store = store
        self._auth = auth
        self._clock = clock or utcnow
        self.cache = cache or get_session_cache()
        self.invitations = invitations or InvitationManager(store=store, clock=self._clock)
        self.retry_policy = retry_policy or RetryPolicy.from_config()

    @property
    def store(self) -> Store:
        if self._store is None:
            self._store = get_store()
        return self._store

    @property
    def auth(self) -> Any:
        if self._auth is None:
            self._auth = get_supabase_client().auth
        return self._auth

    def _auth_call(self, operation: str, func: Callable, *args: Any) -> Any:
        try:
            return func(*args)
        except AuthError as e:
            raise translate_auth_error(e, operation) from e
        except httpx.TimeoutException as e:
            raise Unavailable(f"{operation} timed out") from e
        except httpx.TransportError as e:
            raise Unavailable(f"{operation} failed to reach the identity provider: {e}") from e

    def _create_identity(self, request: SignUpRequest) -> Identity:
        response = self._auth_call("create identity", self.auth.admin.create_user, {
            "email": request.email,
            "password": request.password,
            "email_confirm": True,
            "user_metadata": {"name": request.name},
        })
        user = response.user
        if user is None:
            raise Unavailable("identity provider returned no user")
        return Identity(id=str(user.id), email=normalize_email(user.email or request.email))

    def _discard_identity(self, identity: Identity) -> None:
        # Roll back an identity whose profile could not be created
        try:
            self._auth_call("delete identity", self.auth.admin.delete_user, identity.id)
        except PortfolioError as e:
            logger.error(
                "Failed to roll back identity",
                user_id=mask_user_id(identity.id),
                error=str(e),
            )

    async def load_profile(self, user_id: str) -> UserProfile:
        """Load a profile, retrying while the store has not caught up with a fresh identity."""
        async def attempt() -> UserProfile:
            row = self.store.get(USER_PROFILES, user_id)
            if row is None:
                raise NotFound("profile")
            return UserProfile(**row)

        return await retry_async(attempt, self.retry_policy, operation_name="load profile", log=logger)

    def _load_agency(self, profile: UserProfile) -> Optional[Agency]:
        if profile.agency_id is None:
            return None
        row = self.store.get(AGENCIES, profile.agency_id)
        return Agency(**row) if row else None

    @timed("identity.sign_up")
    async def sign_up(self, email: str, password: str, name: str) -> UserProfile:
        request = _validate_sign_up(email, password, name)
        identity = self._create_identity(request)
        try:
            row = self.store.bootstrap_profile({"id": identity.id, "email": identity.email, "name": request.name})
        except PortfolioError:
            self._discard_identity(identity)
            raise

        profile = UserProfile(**row)
        logger.info(
            "User signed up",
            user_id=mask_user_id(identity.id),
            email=mask_email(identity.email),
            role=profile.role.value,
        )
        return profile

    @timed("identity.sign_up_with_invitation")
    async def sign_up_with_invitation(self, token: str, email: str, password: str, name: str) -> UserProfile:
        """Create the identity only after the token and email check out, then redeem."""
        request = _validate_sign_up(email, password, name)
        invitation = await self.invitations.validate_token(token)
        if normalize_email(request.email) != invitation.email:
            raise EmailMismatch(f"sign-up email does not match invitation {invitation.id}")

        identity = self._create_identity(request)
        try:
            profile = await self.invitations.redeem(token, identity, name=request.name)
        except PortfolioError:
            self._discard_identity(identity)
            raise

        logger.info(
            "User signed up with invitation",
            user_id=mask_user_id(identity.id),
            agency_id=profile.agency_id,
            role=profile.role.value,
        )
        return profile

    @timed("identity.sign_in")
    async def sign_in(self, email: str, password: str) -> SessionState:
        response = self._auth_call("sign in", self.auth.sign_in_with_password, {
            "email": normalize_email(email),
            "password": password,
        })
        user = response.user
        identity = Identity(id=str(user.id), email=normalize_email(user.email or email))

        profile = await self.load_profile(identity.id)
        if not profile.is_active:
            self._auth_call("sign out", self.auth.sign_out)
            self.cache.clear()
            raise PermissionDenied(
                f"profile {identity.id} is deactivated",
                user_message="This account has been deactivated. Please contact your administrator.",
            )

        now = self._clock()
        updated = self.store.update(USER_PROFILES, identity.id, {"last_login_at": now.isoformat()})
        if updated is not None:
            profile = UserProfile(**updated)

        state = self.cache.populate(identity, profile, self._load_agency(profile), response.session)
        logger.info("User signed in", user_id=mask_user_id(identity.id), role=profile.role.value)
        return state

    async def sign_out(self) -> None:
        try:
            self._auth_call("sign out", self.auth.sign_out)
        finally:
            self.cache.clear()
        logger.info("User signed out")

    async def create_super_admin(self, actor: Any, email: str, password: str, name: str) -> UserProfile:
        """Privileged path for additional super admins; never reachable through role assignment."""
        if not is_super_admin(actor):
            raise PermissionDenied("only a super admin can create another super admin")

        request = _validate_sign_up(email, password, name)
        identity = self._create_identity(request)
        now = self._clock().isoformat()
        try:
            row = self.store.insert(USER_PROFILES, {
                "id": identity.id,
                "agency_id": None,
                "name": request.name,
                "email": identity.email,
                "role": Role.SUPER_ADMIN.value,
                "is_active": True,
                "created_at": now,
                "updated_at": now,
            })
        except PortfolioError:
            self._discard_identity(identity)
            raise

        logger.warning(
            "Super admin created",
            user_id=mask_user_id(identity.id),
            created_by=mask_user_id(profile_field(actor, "id")),
        )
        return UserProfile(**row)

    async def handle_auth_event(self, event: str, session: Any = None) -> SessionState:
        """Keep the session cache in step with identity-provider events."""
        if event == "SIGNED_OUT":
            self.cache.clear()
            return SIGNED_OUT
        if event not in REFRESH_EVENTS:
            return self.cache.get()

        user = profile_field(session, "user")
        if user is None:
            self.cache.clear()
            return SIGNED_OUT

        identity = Identity(
            id=str(profile_field(user, "id")),
            email=normalize_email(profile_field(user, "email")),
        )
        profile = await self.load_profile(identity.id)
        state = self.cache.populate(identity, profile, self._load_agency(profile), session)
        logger.debug("Auth event handled", auth_event=event, user_id=mask_user_id(identity.id))
        return state
