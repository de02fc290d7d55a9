import pytest

from app.core.audit import AuditAction
from app.core.exceptions import ForbiddenException, NotFoundException
from app.models.role import TenantRole
from app.models.tenant_user import TenantUser, TenantUserStatus
from app.repositories.options import RepositoryOptions
from app.repositories.tenant_user_repository import (
    RoleUpdateMode,
    TenantUserRepository,
    combine_roles,
    select_status,
)
from app.services.tenant_user_service import TenantUserService


def membership(db_session, user, tenant_id):
    db_session.expire_all()
    return user.membership_for(tenant_id)


class FailingAuditSink:
    """Sink that fails on a given action"""

    def __init__(self, failing_action):
        self.failing_action = failing_action

    def log(self, entity_name, entity_id, action, values):
        if action == self.failing_action:
            raise RuntimeError("audit sink unavailable")


class TestSelectStatus:
    """Tests for the status derivation rule"""

    @pytest.mark.parametrize(
        "old_status, roles, expected",
        [
            (TenantUserStatus.INVITED, [], TenantUserStatus.INVITED),
            (TenantUserStatus.INVITED, ["admin"], TenantUserStatus.INVITED),
            (TenantUserStatus.ACTIVE, [], TenantUserStatus.EMPTY_PERMISSIONS),
            (TenantUserStatus.ACTIVE, ["admin"], TenantUserStatus.ACTIVE),
            (TenantUserStatus.EMPTY_PERMISSIONS, ["viewer"], TenantUserStatus.ACTIVE),
            (TenantUserStatus.EMPTY_PERMISSIONS, None, TenantUserStatus.EMPTY_PERMISSIONS),
        ],
    )
    def test_transition_table(self, old_status, roles, expected):
        """invited is sticky; otherwise roles decide"""
        assert select_status(old_status, roles) == expected

    def test_accepts_plain_strings(self):
        """Statuses read from storage are plain strings"""
        assert select_status("invited", ["admin"]) == TenantUserStatus.INVITED


class TestCombineRoles:
    """Tests for role edit modes"""

    def test_add_is_a_union(self):
        """No duplicates accumulate"""
        assert combine_roles(["admin", "member"], ["member", "viewer"], RoleUpdateMode.ADD) == [
            "admin",
            "member",
            "viewer",
        ]

    def test_remove_listed(self):
        """Listed roles are removed, others kept"""
        assert combine_roles(["admin", "member"], ["admin", "owner"], RoleUpdateMode.REMOVE_LISTED) == [
            "member"
        ]

    def test_replace(self):
        """Existing roles are dropped"""
        assert combine_roles(["admin"], [TenantRole.VIEWER, "viewer"], RoleUpdateMode.REPLACE) == ["viewer"]


class TestCreateAndDestroy:
    """Tests for direct membership creation and removal"""

    def test_create_with_roles_is_active(self, options, tenant, make_user, db_session):
        """A membership with roles starts active, without token"""
        user = make_user("ann@example.com")

        tenant_user = TenantUserRepository(options).create(tenant, user, [TenantRole.MEMBER])

        assert tenant_user.status == TenantUserStatus.ACTIVE
        assert tenant_user.invitation_token is None
        assert membership(db_session, user, tenant.id).roles == ["member"]

    def test_create_without_roles_is_empty_permissions(self, options, tenant, make_user):
        """No roles means empty-permissions"""
        user = make_user("ann@example.com")

        tenant_user = TenantUserRepository(options).create(tenant, user, [])

        assert tenant_user.status == TenantUserStatus.EMPTY_PERMISSIONS

    def test_create_does_not_check_existing(self, options, tenant, make_user, db_session):
        """Avoiding a second membership is up to the caller"""
        user = make_user("ann@example.com")
        repository = TenantUserRepository(options)

        repository.create(tenant, user, ["member"])
        repository.create(tenant, user, ["member"])

        db_session.expire_all()
        assert len(user.memberships) == 2

    def test_destroy_removes_membership(self, options, tenant, make_user, db_session, audit_sink):
        """The user stays, the membership goes"""
        user = make_user("ann@example.com")
        repository = TenantUserRepository(options)
        repository.create(tenant, user, ["member"])

        repository.destroy(tenant.id, user.id)

        assert membership(db_session, user, tenant.id) is None
        assert audit_sink.actions_for("user")[-1] == AuditAction.DELETE

    def test_destroy_absent_membership_is_noop(self, options, tenant, make_user, audit_sink):
        """Nothing written and nothing audited"""
        user = make_user("ann@example.com")

        TenantUserRepository(options).destroy(tenant.id, user.id)

        assert audit_sink.entries == []

    def test_destroy_unknown_user(self, options, tenant):
        """Unknown users are not found"""
        with pytest.raises(NotFoundException):
            TenantUserRepository(options).destroy(tenant.id, 999)


class TestUpdateRoles:
    """Tests for role edits and invitations"""

    def test_first_edit_creates_invitation(self, any_options, tenant, make_user, db_session):
        """A user without membership is invited with a token"""
        user = make_user("ann@example.com")

        tenant_user, is_creation = TenantUserRepository(any_options).update_roles(
            tenant.id, user.id, ["member"]
        )

        assert is_creation
        assert tenant_user.status == TenantUserStatus.INVITED
        assert tenant_user.roles == ["member"]
        assert len(tenant_user.invitation_token) == 40
        assert membership(db_session, user, tenant.id) == tenant_user

    def test_invited_stays_invited(self, options, tenant, make_user):
        """Role edits never leave the invited status"""
        user = make_user("ann@example.com")
        repository = TenantUserRepository(options)
        repository.update_roles(tenant.id, user.id, ["member"])

        tenant_user, is_creation = repository.update_roles(tenant.id, user.id, [])

        assert not is_creation
        assert tenant_user.status == TenantUserStatus.INVITED
        assert tenant_user.roles == []

    def test_active_member_losing_roles(self, options, tenant, make_user):
        """active -> empty-permissions -> active"""
        user = make_user(
            "ann@example.com",
            [TenantUser(tenant_id=tenant.id, status=TenantUserStatus.ACTIVE, roles=["member", "admin"])],
        )
        repository = TenantUserRepository(options)

        emptied, _ = repository.update_roles(tenant.id, user.id, ["member", "admin"], RoleUpdateMode.REMOVE_LISTED)
        restored, _ = repository.update_roles(tenant.id, user.id, ["viewer"], RoleUpdateMode.ADD)

        assert emptied.status == TenantUserStatus.EMPTY_PERMISSIONS
        assert emptied.roles == []
        assert restored.status == TenantUserStatus.ACTIVE
        assert restored.roles == ["viewer"]

    def test_status_follows_every_edit(self, options, tenant, make_user):
        """Status is always the rule applied to the previous status and final roles"""
        user = make_user(
            "ann@example.com",
            [TenantUser(tenant_id=tenant.id, status=TenantUserStatus.ACTIVE, roles=["member"])],
        )
        repository = TenantUserRepository(options)
        previous = TenantUserStatus.ACTIVE
        edits = [
            (["admin"], RoleUpdateMode.ADD),
            (["admin", "member"], RoleUpdateMode.REMOVE_LISTED),
            ([], RoleUpdateMode.REPLACE),
            (["viewer"], RoleUpdateMode.REPLACE),
        ]

        for roles, mode in edits:
            tenant_user, _ = repository.update_roles(tenant.id, user.id, roles, mode)
            assert tenant_user.status == select_status(previous, tenant_user.roles)
            previous = tenant_user.status

    def test_other_memberships_untouched(self, options, tenant, make_tenant, make_user, db_session):
        """Only the membership of the given tenant changes"""
        other_tenant = make_tenant("Globex", "globex")
        user = make_user(
            "ann@example.com",
            [TenantUser(tenant_id=other_tenant.id, status=TenantUserStatus.ACTIVE, roles=["admin"])],
        )

        TenantUserRepository(options).update_roles(tenant.id, user.id, ["member"])

        assert membership(db_session, user, other_tenant.id).roles == ["admin"]

    def test_unknown_user(self, options, tenant):
        """Editing roles of a missing user fails"""
        with pytest.raises(NotFoundException):
            TenantUserRepository(options).update_roles(tenant.id, 999, ["member"])


class TestInvitationToken:
    """Tests for token lookup"""

    def test_exact_token_match(self, options, tenant, make_user):
        """The token finds its membership and user"""
        user = make_user("ann@example.com")
        repository = TenantUserRepository(options)
        tenant_user, _ = repository.update_roles(tenant.id, user.id, ["member"])

        match = repository.find_by_invitation_token(tenant_user.invitation_token)

        assert match.user.id == user.id
        assert match.tenant_user.tenant_id == tenant.id

    def test_partial_token_does_not_match(self, options, tenant, make_user):
        """Tokens are opaque: a prefix is not a match"""
        user = make_user("ann@example.com")
        repository = TenantUserRepository(options)
        tenant_user, _ = repository.update_roles(tenant.id, user.id, ["member"])

        assert repository.find_by_invitation_token(tenant_user.invitation_token[:10]) is None
        assert repository.find_by_invitation_token("") is None


class TestAcceptInvitation:
    """Tests for accepting invitations"""

    def test_accept_moves_membership_to_current_user(self, options, make_options, tenant, make_user, db_session):
        """The invited membership becomes an active one of the accepting user"""
        invited = make_user("ann@example.com")
        accepting = make_user("ann.work@example.com")
        tenant_user, _ = TenantUserRepository(options).update_roles(tenant.id, invited.id, ["member"])

        accepted = TenantUserRepository(make_options(accepting, tenant)).accept_invitation(
            tenant_user.invitation_token
        )

        assert accepted.status == TenantUserStatus.ACTIVE
        assert accepted.roles == ["member"]
        assert accepted.invitation_token is None
        assert membership(db_session, invited, tenant.id) is None
        assert membership(db_session, accepting, tenant.id) == accepted

    def test_accept_merges_existing_roles(self, options, make_options, tenant, make_user, db_session):
        """A member accepting an invitation keeps one membership with the union of roles"""
        invited = make_user("ann@example.com")
        member = make_user(
            "bob@example.com",
            [TenantUser(tenant_id=tenant.id, status=TenantUserStatus.ACTIVE, roles=["admin"])],
        )
        tenant_user, _ = TenantUserRepository(options).update_roles(tenant.id, invited.id, ["member"])

        accepted = TenantUserRepository(make_options(member, tenant)).accept_invitation(
            tenant_user.invitation_token
        )

        assert accepted.roles == ["admin", "member"]
        db_session.expire_all()
        assert [m.tenant_id for m in member.memberships] == [tenant.id]

    def test_accepting_again_stays_at_the_union(self, options, make_options, tenant, make_user, db_session):
        """A second invitation with the same roles adds nothing"""
        member = make_user(
            "bob@example.com",
            [TenantUser(tenant_id=tenant.id, status=TenantUserStatus.ACTIVE, roles=["admin"])],
        )
        repository = TenantUserRepository(options)
        accepting = TenantUserRepository(make_options(member, tenant))

        for email in ("ann@example.com", "carl@example.com"):
            invited = make_user(email)
            tenant_user, _ = repository.update_roles(tenant.id, invited.id, ["member"])
            accepted = accepting.accept_invitation(tenant_user.invitation_token)

        assert accepted.roles == ["admin", "member"]

    def test_token_is_single_use(self, options, make_options, tenant, make_user):
        """An accepted token can't be accepted again"""
        invited = make_user("ann@example.com")
        tenant_user, _ = TenantUserRepository(options).update_roles(tenant.id, invited.id, ["member"])
        accepting = TenantUserRepository(make_options(invited, tenant))
        accepting.accept_invitation(tenant_user.invitation_token)

        with pytest.raises(NotFoundException):
            accepting.accept_invitation(tenant_user.invitation_token)

    def test_unknown_token(self, options):
        """Unknown tokens are not found"""
        with pytest.raises(NotFoundException):
            TenantUserRepository(options).accept_invitation("0" * 40)

    def test_accept_is_atomic_with_transactions(self, options, tenant, make_user, db_session):
        """A failure after removing the invitation restores it"""
        invited = make_user("ann@example.com")
        accepting = make_user("ann.work@example.com")
        tenant_user, _ = TenantUserRepository(options).update_roles(tenant.id, invited.id, ["member"])

        failing_options = RepositoryOptions(
            db=db_session,
            transactions=options.transactions,
            current_user=accepting,
            current_tenant=tenant,
            audit=FailingAuditSink(AuditAction.UPDATE),
        )
        with pytest.raises(RuntimeError):
            TenantUserService(failing_options).accept_invitation(tenant_user.invitation_token)

        assert membership(db_session, invited, tenant.id) == tenant_user
        assert membership(db_session, accepting, tenant.id) is None


class TestTenantUserService:
    """Tests for member management of the current tenant"""

    def test_invite_creates_unknown_user(self, options, tenant):
        """Inviting a new e-mail creates the user and an invitation"""
        tenant_user, is_creation = TenantUserService(options).invite(
            {"email": "new@example.com", "roles": ["admin"]}
        )

        assert is_creation
        assert tenant_user.status == TenantUserStatus.INVITED
        assert tenant_user.roles == ["admin"]

    def test_invite_adds_roles_to_member(self, options, tenant, make_user):
        """Inviting an existing member only adds roles"""
        make_user(
            "bob@example.com",
            [TenantUser(tenant_id=tenant.id, status=TenantUserStatus.ACTIVE, roles=["viewer"])],
        )

        tenant_user, is_creation = TenantUserService(options).invite({"email": "bob@example.com"})

        assert not is_creation
        assert tenant_user.status == TenantUserStatus.ACTIVE
        assert tenant_user.roles == ["viewer", "member"]

    def test_cannot_edit_own_roles(self, options, owner):
        """Members can't change their own roles"""
        with pytest.raises(ForbiddenException):
            TenantUserService(options).update_roles(owner.id, {"roles": ["viewer"]})

    def test_cannot_remove_self(self, options, owner):
        """Members can't remove themselves"""
        with pytest.raises(ForbiddenException):
            TenantUserService(options).remove(owner.id)

    def test_remove_member(self, options, tenant, make_user, db_session):
        """Removing detaches the user from the tenant"""
        user = make_user(
            "bob@example.com",
            [TenantUser(tenant_id=tenant.id, status=TenantUserStatus.ACTIVE, roles=["viewer"])],
        )

        TenantUserService(options).remove(user.id)

        assert membership(db_session, user, tenant.id) is None

    def test_members_are_listed_as_tenant_views(self, options, owner, tenant, make_user):
        """Members are read through the tenant view"""
        invited = make_user(
            "bob@example.com",
            [TenantUser(tenant_id=tenant.id, status=TenantUserStatus.INVITED, roles=["viewer"])],
            full_name="Bob Brown",
        )
        service = TenantUserService(options)

        rows, count = service.find_and_count_members(order_by="email_ASC")

        assert count == 2
        assert [row["email"] for row in rows] == ["bob@example.com", "owner@example.com"]
        assert service.find_member(invited.id) == {
            "id": invited.id,
            "email": "bob@example.com",
            "roles": ["viewer"],
            "status": "invited",
        }
