"""
Unit tests for the authorization context and token validation.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from fastapi import HTTPException

from scholarship_aid.core.auth import (
    AuthContext,
    Role,
    _validate_jwt_token,
    school_scope,
    system_context,
)
from scholarship_aid.core.security import create_access_token, decode_token
from scholarship_aid.modules.payments.models import Payment


class TestAuthContext:
    def test_staff_can_access_any_school(self, admin_ctx):
        assert admin_ctx.can_access_school(uuid4())
        assert admin_ctx.can_access_school(None)

    def test_representative_limited_to_assigned_school(self, rep_ctx, school_id):
        assert rep_ctx.can_access_school(school_id)
        assert not rep_ctx.can_access_school(uuid4())
        assert not rep_ctx.can_access_school(None)

    def test_unassigned_representative_sees_nothing(self):
        ctx = AuthContext(user_id=uuid4(), role=Role.SCHOOL_REP, citizen_id="CIT-9")
        assert not ctx.can_access_school(uuid4())

    def test_actor_label_falls_back_to_id(self):
        ctx = AuthContext(user_id=uuid4(), role=Role.FINANCE)
        assert ctx.actor_label == str(ctx.user_id)

    def test_system_context(self):
        ctx = system_context("payments-job")
        assert ctx.role == Role.ADMIN
        assert ctx.actor_label == "payments-job"


class TestSchoolScope:
    def test_staff_scope_is_true(self, admin_ctx):
        assert str(school_scope(admin_ctx, Payment.school_id)) == "true"

    def test_unassigned_representative_scope_is_false(self):
        ctx = AuthContext(user_id=uuid4(), role=Role.SCHOOL_REP)
        assert str(school_scope(ctx, Payment.school_id)) == "false"

    def test_representative_scope_filters_by_school(self, rep_ctx):
        clause = school_scope(rep_ctx, Payment.school_id)
        assert "payments.school_id" in str(clause)


class TestTokenValidation:
    @pytest.mark.asyncio
    async def test_claims_become_context(self):
        user_id = uuid4()
        token = create_access_token(
            str(user_id), Role.SCHOOL_REP, name="Rita Rep", citizen_id="CIT-1"
        )

        ctx = await _validate_jwt_token(token)

        assert ctx.user_id == user_id
        assert ctx.role == Role.SCHOOL_REP
        assert ctx.name == "Rita Rep"
        assert ctx.citizen_id == "CIT-1"
        assert ctx.school_id is None

    @pytest.mark.asyncio
    async def test_expired_token_is_rejected(self):
        token = create_access_token(
            str(uuid4()), Role.ADMIN, expires_delta=timedelta(minutes=-5)
        )
        assert decode_token(token) is None

        with pytest.raises(HTTPException) as exc_info:
            await _validate_jwt_token(token)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["error"] == "INVALID_TOKEN"

    @pytest.mark.asyncio
    async def test_garbage_token_is_rejected(self):
        with pytest.raises(HTTPException):
            await _validate_jwt_token("not.a.jwt")

    @pytest.mark.asyncio
    async def test_non_uuid_subject_is_rejected(self):
        token = create_access_token("admin@example.org", Role.ADMIN)

        with pytest.raises(HTTPException) as exc_info:
            await _validate_jwt_token(token)

        assert exc_info.value.detail["error"] == "INVALID_TOKEN_CLAIMS"
