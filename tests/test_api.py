"""HTTP tests for the OTP, password-reset and course-access endpoints."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.exc import OperationalError

from course_auth.database.engine import get_session
from course_auth.database.repository import AccountRepository
from course_auth.main import app
from course_auth.models.account import Account, AccountRole
from course_auth.routes.deps import get_clock, get_dispatcher, get_token_codec
from course_auth.services.passwords import hash_password
from course_auth.services.token_codec import SignedTokenCodec, to_epoch_ms
from conftest import TEST_TOKEN_SECRET, sent_code


@pytest_asyncio.fixture
async def client(session_factory, dispatcher, clock):
    """ASGI client wired to the in-memory database, fake clock and mock mailer."""
    async with session_factory() as session:
        session.add(
            Account(
                email="alice@example.com",
                name="Alice Johnson",
                password_hash=hash_password("old-password"),
                role=AccountRole.EMPLOYEE,
            )
        )
        await session.commit()

    async def _session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    codec = SignedTokenCodec(SecretStr(TEST_TOKEN_SECRET), clock=clock)
    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_token_codec] = lambda: codec

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


# ── OTP issuance / verification ──────────────────────────

@pytest.mark.asyncio
async def test_send_otp_wire_contract(client: AsyncClient):
    resp = await client.post(
        "/api/auth/send-otp", json={"subjectEmail": "new@co.com", "purpose": "signup"}
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "message": "OTP sent successfully",
        "expiresIn": 600,
    }


@pytest.mark.asyncio
async def test_send_otp_cooldown_returns_429(client: AsyncClient, clock):
    body = {"email": "new@co.com", "purpose": "signup"}
    await client.post("/api/auth/send-otp", json=body)
    clock.advance(seconds=20)

    resp = await client.post("/api/auth/resend-otp", json=body)

    assert resp.status_code == 429
    data = resp.json()
    assert data["error"] == "Please wait"
    assert data["cooldownSeconds"] == 40


@pytest.mark.asyncio
async def test_purpose_is_required(client: AsyncClient):
    resp = await client.post("/api/auth/send-otp", json={"email": "new@co.com"})

    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_bad_email_is_validation_error(client: AsyncClient):
    resp = await client.post(
        "/api/auth/send-otp", json={"email": "nope", "purpose": "signup"}
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid email"


@pytest.mark.asyncio
async def test_verify_otp_flow(client: AsyncClient, dispatcher):
    await client.post("/api/auth/send-otp", json={"email": "new@co.com", "purpose": "signup"})
    code = sent_code(dispatcher)
    wrong = "100000" if code != "100000" else "100001"

    bad = await client.post(
        "/api/auth/verify-otp",
        json={"email": "new@co.com", "purpose": "signup", "otp": wrong},
    )
    assert bad.status_code == 400
    assert bad.json()["attemptsLeft"] == 4

    good = await client.post(
        "/api/auth/verify-otp",
        json={"subjectEmail": "new@co.com", "purpose": "signup", "submittedCode": code},
    )
    assert good.status_code == 200
    assert good.json() == {
        "success": True,
        "message": "OTP verified successfully",
        "verified": True,
    }


@pytest.mark.asyncio
async def test_verify_unknown_is_404(client: AsyncClient):
    resp = await client.post(
        "/api/auth/verify-otp",
        json={"email": "ghost@co.com", "purpose": "signup", "otp": "123456"},
    )
    assert resp.status_code == 404


# ── Registration ─────────────────────────────────────────

@pytest.mark.asyncio
async def test_register_after_verification(client: AsyncClient, dispatcher):
    await client.post("/api/auth/send-otp", json={"email": "bob@co.com", "purpose": "signup"})
    code = sent_code(dispatcher)
    await client.post(
        "/api/auth/verify-otp", json={"email": "bob@co.com", "purpose": "signup", "otp": code}
    )

    resp = await client.post(
        "/api/auth/register",
        json={
            "name": "Bob",
            "email": "bob@co.com",
            "password": "secret1",
            "department": "Kitchen",
            "otp": code,
        },
    )

    assert resp.status_code == 201
    assert resp.json()["email"] == "bob@co.com"


@pytest.mark.asyncio
async def test_register_existing_email_is_409(client: AsyncClient, dispatcher):
    await client.post(
        "/api/auth/send-otp", json={"email": "alice@example.com", "purpose": "signup"}
    )
    code = sent_code(dispatcher)
    await client.post(
        "/api/auth/verify-otp",
        json={"email": "alice@example.com", "purpose": "signup", "otp": code},
    )

    resp = await client.post(
        "/api/auth/register",
        json={"name": "Alice", "email": "alice@example.com", "password": "secret1", "otp": code},
    )

    assert resp.status_code == 409
    assert resp.json()["alreadyRegistered"] is True


# ── Password reset ───────────────────────────────────────

@pytest.mark.asyncio
async def test_forgot_password_does_not_reveal_accounts(client: AsyncClient, dispatcher):
    known = await client.post(
        "/api/auth/forgot-password", json={"email": "alice@example.com", "role": "employee"}
    )
    unknown = await client.post(
        "/api/auth/forgot-password", json={"email": "ghost@example.com", "role": "employee"}
    )

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert known.json()["expiresIn"] == 600
    dispatcher.send_otp.assert_called_once()


@pytest.mark.asyncio
async def test_forgot_password_full_flow(client: AsyncClient, dispatcher):
    await client.post(
        "/api/auth/forgot-password", json={"email": "alice@example.com", "role": "employee"}
    )
    code = sent_code(dispatcher)

    verify = await client.post(
        "/api/auth/forgot-password/verify",
        json={"email": "alice@example.com", "role": "employee", "otp": code},
    )
    assert verify.status_code == 200
    assert verify.json()["verified"] is True

    reset = await client.post(
        "/api/auth/forgot-password/reset",
        json={
            "email": "alice@example.com",
            "role": "employee",
            "otp": code,
            "newPassword": "brand-new",
        },
    )
    assert reset.status_code == 200
    assert reset.json()["success"] is True

    replay = await client.post(
        "/api/auth/forgot-password/reset",
        json={
            "email": "alice@example.com",
            "role": "employee",
            "otp": code,
            "newPassword": "another-one",
        },
    )
    assert replay.status_code == 404


@pytest.mark.asyncio
async def test_account_store_failure_is_internal_error(client: AsyncClient, monkeypatch):
    async def broken_lookup(self, email, role=None):
        raise OperationalError("SELECT", {}, Exception("db gone"))

    monkeypatch.setattr(AccountRepository, "find_by_email", broken_lookup)

    resp = await client.post(
        "/api/auth/forgot-password", json={"email": "alice@example.com", "role": "employee"}
    )

    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json()["code"] == "INTERNAL_ERROR"


@pytest.mark.asyncio
async def test_reset_verify_does_not_need_role(client: AsyncClient, dispatcher):
    await client.post(
        "/api/auth/forgot-password", json={"email": "alice@example.com", "role": "employee"}
    )

    resp = await client.post(
        "/api/auth/forgot-password/verify",
        json={"email": "alice@example.com", "otp": sent_code(dispatcher)},
    )

    assert resp.status_code == 200
    assert resp.json()["verified"] is True


@pytest.mark.asyncio
async def test_invalid_role_is_400(client: AsyncClient):
    resp = await client.post(
        "/api/auth/forgot-password", json={"email": "alice@example.com", "role": "owner"}
    )
    assert resp.status_code == 400


# ── Course access ────────────────────────────────────────

@pytest.mark.asyncio
async def test_course_access_valid_token(client: AsyncClient, clock):
    codec = app.dependency_overrides[get_token_codec]()
    token = codec.issue("a@x.com", "CourseX", to_epoch_ms(clock()) + 3_600_000, correlation_id="t-1")

    resp = await client.get(
        "/api/courses/course-access", params={"token": token, "email": "a@x.com"}
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "valid": True,
        "subjectEmail": "a@x.com",
        "resourceLabel": "CourseX",
        "deadline": to_epoch_ms(clock()) + 3_600_000,
        "issuedAt": to_epoch_ms(clock()),
        "correlationId": "t-1",
    }


@pytest.mark.asyncio
async def test_course_access_errors(client: AsyncClient, clock):
    codec = app.dependency_overrides[get_token_codec]()
    token = codec.issue("a@x.com", "CourseX", to_epoch_ms(clock()) + 60_000)

    mismatch = await client.get(
        "/api/courses/course-access", params={"token": token, "email": "b@x.com"}
    )
    assert mismatch.status_code == 403

    malformed = await client.get("/api/courses/course-access", params={"token": "garbage"})
    assert malformed.status_code == 400
    assert malformed.json()["code"] == "MALFORMED_TOKEN"

    payload, signature = token.split(".")
    forged = await client.get(
        "/api/courses/course-access",
        params={"token": f"{payload}.{'0' * len(signature)}"},
    )
    assert forged.status_code == 401

    clock.advance(minutes=2)
    expired = await client.get("/api/courses/course-access", params={"token": token})
    assert expired.status_code == 400
    assert expired.json()["code"] == "EXPIRED"
