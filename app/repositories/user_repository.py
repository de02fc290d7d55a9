import secrets
from datetime import datetime, timedelta, UTC
from typing import Any

from sqlalchemy import String, cast, func, or_, select

from app.config import settings
from app.core.audit import AuditAction
from app.core.exceptions import NotFoundException
from app.models.user import User
from app.repositories.options import RepositoryOptions
from app.repositories.query_utils import apply_created_at_range, sort_clause
from app.repositories.session import run_with_session
from app.utils.user_tenant import is_user_in_tenant, map_user_for_tenant, map_users_for_tenant

TOKEN_BYTES = 20

PROFILE_INPUT_FIELDS = ("first_name", "last_name", "full_name", "phone_number")

# Never written to the audit log
SECRET_FIELDS = (
    "password",
    "email_verification_token",
    "password_reset_token",
)


class UserRepository:
    """Repository for User model operations"""

    def __init__(self, options: RepositoryOptions):
        self.options = options
        self.db = options.db

    def create(self, data: dict[str, Any]) -> User:
        """
        Create a user with profile fields (no credentials).

        Returns:
            The new user, unredacted
        """
        data = self._pre_save(data)
        user = User(
            email=data["email"],
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            full_name=data.get("full_name"),
            phone_number=data.get("phone_number"),
            import_hash=data.get("import_hash"),
            tenants=[],
            created_by=self.options.current_user_id,
            updated_by=self.options.current_user_id,
        )
        run_with_session(lambda db: db.add(user), self.options)
        self._audit(user.id, AuditAction.CREATE, user.to_dict())

        return self.db.get(User, user.id)

    def create_from_auth(self, data: dict[str, Any]) -> User:
        """Create a user signing up with e-mail and (already hashed) password"""
        data = self._pre_save(data)
        user = User(
            email=data["email"],
            password=data.get("password"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            full_name=data.get("full_name"),
            tenants=[],
        )
        run_with_session(lambda db: db.add(user), self.options)
        self._audit(user.id, AuditAction.CREATE, user.to_dict())

        return self.db.get(User, user.id)

    def update(self, user_id: int, data: dict[str, Any]) -> User:
        """
        Update the profile fields of a user.

        Raises:
            NotFoundException: If the user doesn't exist
        """
        user = self._get(user_id)
        data = self._pre_save(data)

        def write(db):
            for field in PROFILE_INPUT_FIELDS:
                setattr(user, field, data.get(field))
            user.updated_by = self.options.current_user_id

        run_with_session(write, self.options)
        self._audit(user.id, AuditAction.UPDATE, user.to_dict())
        return user

    def update_profile(self, user_id: int, data: dict[str, Any]) -> User:
        """Update the current user's own profile"""
        return self.update(user_id, data)

    def update_password(self, user_id: int, password: str, invalidate_old_tokens: bool = False) -> User:
        """
        Store a new (already hashed) password.

        Args:
            user_id: User ID
            password: Password hash
            invalidate_old_tokens: Reject auth tokens issued before now
        """
        user = self._get(user_id)

        def write(db):
            user.password = password
            user.updated_by = self.options.current_user_id
            if invalidate_old_tokens:
                user.jwt_token_invalid_before = datetime.now(UTC)

        run_with_session(write, self.options)
        self._audit(user_id, AuditAction.UPDATE, {"id": user_id, "password": "secret"})
        return user

    def generate_email_verification_token(self, email: str) -> str:
        """Issue an e-mail verification token valid for the configured TTL"""
        return self._generate_token(
            email,
            "email_verification_token",
            timedelta(hours=settings.EMAIL_VERIFICATION_TOKEN_TTL_HOURS),
        )

    def generate_password_reset_token(self, email: str) -> str:
        """Issue a password reset token valid for the configured TTL"""
        return self._generate_token(
            email,
            "password_reset_token",
            timedelta(hours=settings.PASSWORD_RESET_TOKEN_TTL_HOURS),
        )

    def find_by_password_reset_token(self, token: str) -> User | None:
        """User holding an unexpired password reset token"""
        return self.db.execute(
            select(User).where(
                User.password_reset_token == token,
                User.password_reset_token_expires_at > datetime.now(UTC),
            )
        ).scalar_one_or_none()

    def find_by_email_verification_token(self, token: str) -> User | None:
        """User holding an unexpired e-mail verification token"""
        return self.db.execute(
            select(User).where(
                User.email_verification_token == token,
                User.email_verification_token_expires_at > datetime.now(UTC),
            )
        ).scalar_one_or_none()

    def mark_email_verified(self, user_id: int) -> bool:
        user = self._get(user_id)

        def write(db):
            user.email_verified = True
            user.updated_by = self.options.current_user_id

        run_with_session(write, self.options)
        self._audit(user_id, AuditAction.UPDATE, {"email_verified": True})
        return True

    def find_by_email(self, email: str) -> User | None:
        """User by e-mail, unredacted (authentication and invitations)"""
        return self.db.execute(
            select(User).where(User.email == email.strip())
        ).scalar_one_or_none()

    def find_by_id(self, user_id: int) -> dict[str, Any] | User:
        """
        Get a user as seen from the current tenant.

        With ``bypass_permission_validation`` the full record is returned.
        Otherwise the user must have a membership in the current tenant and
        the result is its tenant view (see ``map_user_for_tenant``).

        Raises:
            NotFoundException: If the user doesn't exist or isn't visible
        """
        user = self._get(user_id)

        if self.options.bypass_permission_validation:
            return user

        tenant_id = self.options.current_tenant_id
        if not is_user_in_tenant(user, tenant_id):
            raise NotFoundException(f"User {user_id} not found")

        return map_user_for_tenant(user, tenant_id)

    def find_password(self, user_id: int) -> str | None:
        user = self.db.get(User, user_id)
        return user.password if user is not None else None

    def find_and_count_all(
        self,
        filter: dict[str, Any] | None = None,
        limit: int = 0,
        offset: int = 0,
        order_by: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Members of the current tenant, as tenant views.

        ``filter`` keys: ``id``, ``full_name`` and ``email`` (partial,
        case-insensitive), ``role`` and ``status`` (of the membership in the
        current tenant) and ``created_at_range``.

        Returns:
            Tuple of (tenant views, total count before pagination)
        """
        filter = filter or {}
        tenant_id = self.options.current_tenant_id

        statement = select(User).where(cast(User.tenants, String).contains(str(tenant_id)))
        if filter.get("id"):
            statement = statement.where(User.id == int(filter["id"]))
        if filter.get("full_name"):
            statement = statement.where(User.full_name.ilike(f"%{filter['full_name']}%"))
        if filter.get("email"):
            statement = statement.where(User.email.ilike(f"%{filter['email']}%"))
        statement = apply_created_at_range(statement, User, filter.get("created_at_range"))
        statement = statement.order_by(sort_clause(User, order_by, "created_at_DESC"), User.id.desc())

        # Role and status live in the JSON membership list, so they are matched
        # here and paging follows; memory use grows with the tenant's member count
        members = []
        for user in self.db.execute(statement).scalars():
            tenant_user = user.membership_for(tenant_id)
            if tenant_user is None:
                continue
            if filter.get("role") and filter["role"] not in tenant_user.roles:
                continue
            if filter.get("status") and tenant_user.status.value != filter["status"]:
                continue
            members.append(user)

        total = len(members)
        start = int(offset or 0)
        page = members[start : start + int(limit)] if limit else members[start:]
        return map_users_for_tenant(page, tenant_id), total

    def find_all_autocomplete(self, search: str | None, limit: int = 0) -> list[dict[str, Any]]:
        """``{id, label}`` pairs of current tenant members, label ``Full Name <email>``"""
        tenant_id = self.options.current_tenant_id

        statement = select(User).where(cast(User.tenants, String).contains(str(tenant_id)))
        if search:
            criteria = [User.full_name.ilike(f"%{search}%"), User.email.ilike(f"%{search}%")]
            if str(search).isdigit():
                criteria.append(User.id == int(search))
            statement = statement.where(or_(*criteria))
        statement = statement.order_by(User.full_name.asc(), User.email.asc())

        views = map_users_for_tenant(self.db.execute(statement).scalars(), tenant_id)
        if limit:
            views = views[: int(limit)]

        return [{"id": view["id"], "label": self._label(view)} for view in views]

    def count(self, **filters: Any) -> int:
        """Number of users matching exact field values"""
        return self.db.execute(
            select(func.count()).select_from(User).filter_by(**filters)
        ).scalar_one()

    def _get(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundException(f"User {user_id} not found")
        return user

    def _generate_token(self, email: str, field: str, ttl: timedelta) -> str:
        user = self.find_by_email(email)
        if user is None:
            raise NotFoundException(f"User {email} not found")

        token = secrets.token_hex(TOKEN_BYTES)
        expires_at = datetime.now(UTC) + ttl

        def write(db):
            setattr(user, field, token)
            setattr(user, f"{field}_expires_at", expires_at)
            user.updated_by = self.options.current_user_id

        run_with_session(write, self.options)
        self._audit(user.id, AuditAction.UPDATE, {"id": user.id, f"{field}_expires_at": expires_at})
        return token

    def _audit(self, user_id: int, action: AuditAction, values: dict[str, Any]) -> None:
        values = {key: value for key, value in values.items() if key not in SECRET_FIELDS}
        self.options.audit.log("user", user_id, action, values)

    @staticmethod
    def _label(view: dict[str, Any]) -> str:
        if not view.get("full_name"):
            return view["email"]
        return f"{view['full_name']} <{view['email']}>"

    @staticmethod
    def _pre_save(data: dict[str, Any]) -> dict[str, Any]:
        """Trim names and e-mail and derive ``full_name`` from first and last name"""
        data = dict(data)
        first_name = (data.get("first_name") or "").strip()
        last_name = (data.get("last_name") or "").strip()

        if first_name or last_name:
            data["full_name"] = f"{first_name} {last_name}".strip()

        data["email"] = data["email"].strip() if data.get("email") else None
        data["first_name"] = first_name or None
        data["last_name"] = last_name or None
        return data
