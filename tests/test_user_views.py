from datetime import datetime, timedelta, UTC

import pytest

from app.core.exceptions import NotFoundException
from app.models.tenant_user import TenantUser, TenantUserStatus
from app.repositories.user_repository import UserRepository
from app.utils.user_tenant import is_user_in_tenant, map_user_for_tenant, map_users_for_tenant

PROFILE = {"first_name": "Ann", "last_name": "Lee", "full_name": "Ann Lee", "phone_number": "555-0100"}


def member(tenant_id, status, roles=("member",)):
    return TenantUser(tenant_id=tenant_id, status=status, roles=list(roles))


class TestMapUserForTenant:
    """Tests for the tenant-scoped user view"""

    def test_active_member_sees_full_profile(self, tenant, make_user):
        """Active members are shown with their profile"""
        user = make_user("ann@example.com", [member(tenant.id, TenantUserStatus.ACTIVE)], **PROFILE)

        view = map_user_for_tenant(user, tenant.id)

        assert view["full_name"] == "Ann Lee"
        assert view["phone_number"] == "555-0100"
        assert view["roles"] == ["member"]
        assert view["status"] == "active"

    def test_invited_member_is_redacted(self, tenant, make_user):
        """Invited members show id, email, roles and status only"""
        user = make_user("ann@example.com", [member(tenant.id, TenantUserStatus.INVITED)], **PROFILE)

        view = map_user_for_tenant(user, tenant.id)

        assert view == {"id": user.id, "email": "ann@example.com", "roles": ["member"], "status": "invited"}

    def test_empty_permissions_is_redacted(self, tenant, make_user):
        """Members without roles show no profile either"""
        user = make_user("ann@example.com", [member(tenant.id, TenantUserStatus.EMPTY_PERMISSIONS, ())], **PROFILE)

        view = map_user_for_tenant(user, tenant.id)

        assert set(view) == {"id", "email", "roles", "status"}

    def test_view_uses_the_viewing_tenant(self, tenant, make_tenant, make_user):
        """Roles and status come from the viewing tenant's membership"""
        other_tenant = make_tenant("Globex", "globex")
        user = make_user(
            "ann@example.com",
            [
                member(tenant.id, TenantUserStatus.INVITED, ["viewer"]),
                member(other_tenant.id, TenantUserStatus.ACTIVE, ["admin"]),
            ],
            **PROFILE,
        )

        assert map_user_for_tenant(user, tenant.id)["roles"] == ["viewer"]
        assert "full_name" not in map_user_for_tenant(user, tenant.id)
        assert map_user_for_tenant(user, other_tenant.id)["full_name"] == "Ann Lee"

    def test_non_member_has_no_view(self, tenant, make_user):
        """No membership, no view"""
        user = make_user("ann@example.com", **PROFILE)

        assert map_user_for_tenant(user, tenant.id) is None
        assert not is_user_in_tenant(user, tenant.id)

    def test_credentials_never_leak(self, tenant, make_user):
        """Passwords and tokens are not part of any view"""
        user = make_user(
            "ann@example.com",
            [member(tenant.id, TenantUserStatus.ACTIVE)],
            password="hash",
            password_reset_token="secret",
        )

        view = map_user_for_tenant(user, tenant.id)

        assert "password" not in view
        assert "password_reset_token" not in view
        assert "tenants" not in view

    def test_listing_drops_outsiders(self, tenant, make_user):
        """Listings only contain users of the tenant"""
        inside = make_user("in@example.com", [member(tenant.id, TenantUserStatus.ACTIVE)])
        make_user("out@example.com")

        views = map_users_for_tenant([inside], tenant.id)

        assert [view["email"] for view in views] == ["in@example.com"]


class TestUserRepositoryLookups:
    """Tests for user lookups scoped to the current tenant"""

    def test_find_by_id_redacts(self, options, tenant, make_user):
        """Lookups from a tenant return the tenant view"""
        user = make_user("ann@example.com", [member(tenant.id, TenantUserStatus.INVITED)], **PROFILE)

        view = UserRepository(options).find_by_id(user.id)

        assert set(view) == {"id", "email", "roles", "status"}

    def test_find_by_id_outside_tenant(self, options, make_user):
        """Users of other tenants are not found"""
        user = make_user("ann@example.com", **PROFILE)

        with pytest.raises(NotFoundException):
            UserRepository(options).find_by_id(user.id)

    def test_find_by_id_bypassing_permissions(self, options, make_user):
        """Internal callers get the full record"""
        user = make_user("ann@example.com", **PROFILE)

        found = UserRepository(options.bypassing_permissions()).find_by_id(user.id)

        assert found.id == user.id
        assert found.full_name == "Ann Lee"

    def test_find_and_count_all(self, options, owner, tenant, make_tenant, make_user):
        """Members only, each as a tenant view, with filters"""
        other_tenant = make_tenant("Globex", "globex")
        make_user("invited@example.com", [member(tenant.id, TenantUserStatus.INVITED)], **PROFILE)
        make_user("admin@example.com", [member(tenant.id, TenantUserStatus.ACTIVE, ["admin"])])
        make_user("outsider@example.com", [member(other_tenant.id, TenantUserStatus.ACTIVE, ["admin"])])
        repository = UserRepository(options)

        rows, count = repository.find_and_count_all()
        admins, admin_count = repository.find_and_count_all({"role": "admin"})
        invited, _ = repository.find_and_count_all({"status": "invited"})
        page, page_count = repository.find_and_count_all(limit=1, offset=1, order_by="email_ASC")

        assert count == 3
        assert {row["email"] for row in rows} == {"owner@example.com", "invited@example.com", "admin@example.com"}
        assert admin_count == 1
        assert admins[0]["email"] == "admin@example.com"
        assert "full_name" not in invited[0]
        assert page_count == 3
        assert [row["email"] for row in page] == ["invited@example.com"]

    def test_autocomplete(self, options, tenant, make_user):
        """Labels read 'Full Name <email>'"""
        user = make_user("ann@example.com", [member(tenant.id, TenantUserStatus.ACTIVE)], **PROFILE)

        results = UserRepository(options).find_all_autocomplete("ann", 10)

        assert results == [{"id": user.id, "label": "Ann Lee <ann@example.com>"}]


class TestUserRepositoryWrites:
    """Tests for user profile and credential writes"""

    def test_create_normalizes_names(self, options, audit_sink):
        """Names are trimmed and the full name derived"""
        user = UserRepository(options).create(
            {"email": " ann@example.com ", "first_name": " Ann ", "last_name": "Lee "}
        )

        assert user.email == "ann@example.com"
        assert user.full_name == "Ann Lee"
        assert user.tenants == []
        assert audit_sink.actions_for("user") == ["create"]

    def test_update_profile(self, options, make_user):
        """Profile fields are replaced"""
        user = make_user("ann@example.com", **PROFILE)

        updated = UserRepository(options).update_profile(user.id, {"first_name": "Anna", "last_name": "Lee"})

        assert updated.full_name == "Anna Lee"
        assert updated.phone_number is None

    def test_password_reset_token(self, options, make_user, db_session):
        """Tokens are found until they expire"""
        user = make_user("ann@example.com")
        repository = UserRepository(options)

        token = repository.generate_password_reset_token("ann@example.com")

        assert repository.find_by_password_reset_token(token).id == user.id
        user.password_reset_token_expires_at = datetime.now(UTC) - timedelta(minutes=1)
        db_session.commit()
        assert repository.find_by_password_reset_token(token) is None

    def test_email_verification(self, options, make_user):
        """Verification tokens lead to a verified e-mail"""
        user = make_user("ann@example.com")
        repository = UserRepository(options)

        token = repository.generate_email_verification_token("ann@example.com")
        found = repository.find_by_email_verification_token(token)
        repository.mark_email_verified(found.id)

        assert user.email_verified is True

    def test_token_for_unknown_email(self, options):
        """Tokens can't be issued for unknown e-mails"""
        with pytest.raises(NotFoundException):
            UserRepository(options).generate_password_reset_token("nobody@example.com")

    def test_update_password_invalidates_tokens(self, options, make_user, audit_sink):
        """Old auth tokens can be invalidated with the new password"""
        user = make_user("ann@example.com")

        UserRepository(options).update_password(user.id, "new-hash", invalidate_old_tokens=True)

        assert UserRepository(options).find_password(user.id) == "new-hash"
        assert user.jwt_token_invalid_before is not None
        assert "password" not in audit_sink.entries[-1][3]

    def test_create_from_auth(self, options):
        """Sign-ups keep the hashed password but start without memberships"""
        repository = UserRepository(options)

        user = repository.create_from_auth({"email": "ann@example.com", "password": "hash", "first_name": "Ann"})

        assert user.full_name == "Ann"
        assert user.tenants == []
        assert repository.find_password(user.id) == "hash"
        assert repository.find_by_email("ann@example.com").id == user.id
