"""Tests for verification token issue and consumption."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from app.repositories.user_repository import UserRepository
from app.services.verification import (
    VerificationOutcome,
    consume_verification_token,
    issue_verification_token,
    mark_user_verified,
)


class TestIssueVerificationToken:
    async def test_token_is_long_and_url_safe(self, db_session, make_user):
        user = await make_user(is_verified=False)
        token = await issue_verification_token(db_session, user)
        assert len(token) >= 43
        assert all(c.isalnum() or c in "-_" for c in token)

    async def test_new_token_replaces_old(self, db_session, make_user):
        user = await make_user(is_verified=False)
        old = await issue_verification_token(db_session, user)
        new = await issue_verification_token(db_session, user)
        assert old != new
        assert await UserRepository.get_by_verification_token(db_session, old) is None
        found = await UserRepository.get_by_verification_token(db_session, new)
        assert found is not None


class TestConsumeVerificationToken:
    async def test_first_use_verifies(self, db_session, make_user):
        user = await make_user(is_verified=False, verification_token="tok-1")
        result = await consume_verification_token(db_session, "tok-1")
        assert result.outcome is VerificationOutcome.VERIFIED
        assert result.user is not None
        assert result.user.id == user.id
        assert result.user.is_verified is True
        assert result.user.verification_token is None

    async def test_token_is_single_use(self, db_session, make_user):
        await make_user(is_verified=False, verification_token="tok-1")
        await consume_verification_token(db_session, "tok-1")
        again = await consume_verification_token(db_session, "tok-1")
        assert again.outcome is VerificationOutcome.INVALID_TOKEN
        assert again.user is None

    async def test_unknown_token(self, db_session):
        result = await consume_verification_token(db_session, "never-issued")
        assert result.outcome is VerificationOutcome.INVALID_TOKEN

    async def test_token_of_already_verified_user(self, db_session, make_user):
        """A stale token held by a verified user reports already verified."""
        user = await make_user(is_verified=True, verification_token="stale")
        result = await consume_verification_token(db_session, "stale")
        assert result.outcome is VerificationOutcome.ALREADY_VERIFIED
        assert result.user is not None
        assert result.user.id == user.id

    async def test_losing_a_race_is_invalid(self, db_session, make_user):
        """The request whose conditional update matches nothing gets INVALID_TOKEN.

        Simulates a concurrent request that verified the user between this
        request's lookup and its update.
        """
        user = await make_user(is_verified=False, verification_token="tok-1")
        stale = SimpleNamespace(id=user.id, is_verified=False)
        assert await mark_user_verified(db_session, user.id, token="tok-1") is True

        with patch(
            "app.services.verification.UserRepository.get_by_verification_token",
            new=AsyncMock(return_value=stale),
        ):
            result = await consume_verification_token(db_session, "tok-1")

        assert result.outcome is VerificationOutcome.INVALID_TOKEN

    async def test_concurrent_consumption_verifies_once(
        self, session_factory, make_user
    ):
        user = await make_user(is_verified=False, verification_token="tok-1")

        async def consume():
            async with session_factory() as session:
                result = await consume_verification_token(session, "tok-1")
                await session.commit()
                return result.outcome

        outcomes = await asyncio.gather(consume(), consume())

        assert sorted(o.value for o in outcomes) == sorted(
            [VerificationOutcome.VERIFIED.value, VerificationOutcome.INVALID_TOKEN.value]
        )
        async with session_factory() as session:
            stored = await UserRepository.get_by_id(session, user.id)
        assert stored.is_verified is True
        assert stored.verification_token is None
        assert stored.email_verified is not None


class TestMarkUserVerified:
    async def test_only_first_call_transitions(self, db_session, make_user):
        user = await make_user(is_verified=False)
        assert await mark_user_verified(db_session, user.id) is True
        assert await mark_user_verified(db_session, user.id) is False
