"""Tests for credential sign-up."""

import asyncio

import pytest
from sqlalchemy import func, select

from app.core.errors import ConflictError, EmailDeliveryError, ValidationError
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.services.registration import register_user
from tests.conftest import TEST_PASSWORD, FakeEmailSender


class TestRegisterUser:
    async def test_creates_unverified_user_and_sends_link(
        self, db_session, email_sender
    ):
        user = await register_user(
            db_session,
            email_sender,
            name="Ada",
            email="Ada@Example.com",
            password=TEST_PASSWORD,
        )
        assert user.email == "ada@example.com"
        assert user.is_verified is False
        assert user.password_hash and user.password_hash != TEST_PASSWORD
        assert user.verification_token

        assert email_sender.subjects() == ["Verify your email"]
        assert email_sender.sent[0].to == "ada@example.com"
        assert f"token={user.verification_token}" in email_sender.sent[0].text

    async def test_duplicate_email_conflicts_without_email(
        self, db_session, email_sender, make_user
    ):
        await make_user("ada@example.com")
        with pytest.raises(ConflictError) as exc_info:
            await register_user(
                db_session,
                email_sender,
                name="Ada",
                email="ADA@example.com",
                password=TEST_PASSWORD,
            )
        assert exc_info.value.code == "EMAIL_ALREADY_EXISTS"
        assert email_sender.sent == []

    async def test_weak_password_rejected_before_insert(
        self, db_session, email_sender
    ):
        with pytest.raises(ValidationError):
            await register_user(
                db_session,
                email_sender,
                name="Ada",
                email="ada@example.com",
                password="short",
            )
        assert await UserRepository.get_by_email(db_session, "ada@example.com") is None

    async def test_email_failure_removes_user(self, db_session):
        sender = FakeEmailSender(fail=True)
        with pytest.raises(EmailDeliveryError):
            await register_user(
                db_session,
                sender,
                name="Ada",
                email="ada@example.com",
                password=TEST_PASSWORD,
            )
        assert len(sender.sent) == 1
        assert await UserRepository.get_by_email(db_session, "ada@example.com") is None

    async def test_address_reusable_after_failed_send(self, db_session, email_sender):
        with pytest.raises(EmailDeliveryError):
            await register_user(
                db_session,
                FakeEmailSender(fail=True),
                name="Ada",
                email="ada@example.com",
                password=TEST_PASSWORD,
            )
        user = await register_user(
            db_session,
            email_sender,
            name="Ada",
            email="ada@example.com",
            password=TEST_PASSWORD,
        )
        assert user.email == "ada@example.com"

    async def test_concurrent_signups_for_one_address(
        self, session_factory, email_sender
    ):
        """Two sign-ups racing for the same address: one account, one 409."""

        async def sign_up():
            async with session_factory() as session:
                return await register_user(
                    session,
                    email_sender,
                    name="Ada",
                    email="ada@example.com",
                    password=TEST_PASSWORD,
                )

        results = await asyncio.gather(sign_up(), sign_up(), return_exceptions=True)

        users = [r for r in results if isinstance(r, User)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(users) == 1
        assert len(conflicts) == 1
        assert conflicts[0].code == "EMAIL_ALREADY_EXISTS"
        assert email_sender.subjects() == ["Verify your email"]

        async with session_factory() as session:
            count = await session.scalar(
                select(func.count())
                .select_from(User)
                .where(User.email == "ada@example.com")
            )
        assert count == 1
