from datetime import timedelta

from sqlalchemy import select, update

from app.core.errors import InternalError
from app.core.security import REFRESH_COOKIE, create_refresh_token
from app.core.utils import utcnow
from app.models.user import User

from conftest import PASSWORD, login_as

SIGNUP = {
    "nom": "Durand",
    "prenom": "Paul",
    "email": "Paul.Durand@Example.com",
    "password": PASSWORD,
    "confirmPassword": PASSWORD,
}


async def fetch_user(database, email):
    async with database.session() as session:
        res = await session.execute(select(User).where(User.email == email))
        return res.scalars().first()


async def signup_and_verify(client, mailer):
    resp = await client.post("/auth/signup", json=SIGNUP)
    assert resp.status_code == 201
    code = mailer.last_code("paul.durand@example.com")
    resp = await client.post("/auth/verifmail", json={"email": "paul.durand@example.com", "code": code})
    assert resp.status_code == 200


async def test_signup_normalizes_names_and_sends_code(client, mailer, database):
    resp = await client.post("/auth/signup", json=SIGNUP)

    assert resp.status_code == 201
    assert resp.json() == {"sendMail": True, "email": "paul.durand@example.com"}
    user = await fetch_user(database, "paul.durand@example.com")
    assert (user.nom, user.prenom) == ("DURAND", "paul")
    assert not user.is_verified
    code = mailer.last_code("paul.durand@example.com")
    assert len(code) == 6
    # only the hash is stored
    assert user.confirm != code


async def test_signup_rejects_duplicates(client):
    assert (await client.post("/auth/signup", json=SIGNUP)).status_code == 201

    resp = await client.post("/auth/signup", json=SIGNUP)
    assert resp.status_code == 409

    same_name = {**SIGNUP, "email": "other@example.com"}
    resp = await client.post("/auth/signup", json=same_name)
    assert resp.status_code == 409


async def test_signup_reports_field_errors(client):
    payload = {**SIGNUP, "password": "weak", "confirmPassword": "weak"}

    resp = await client.post("/auth/signup", json=payload)

    assert resp.status_code == 400
    fields = {e["field"] for e in resp.json()["errors"]}
    assert "password" in fields


async def test_verify_email_then_login(client, mailer):
    await signup_and_verify(client, mailer)

    resp = await client.post("/auth/login", json={"email": "paul.durand@example.com", "password": PASSWORD})

    assert resp.status_code == 200
    assert resp.json()["nom"] == "DURAND"
    assert "jwt" in resp.cookies
    assert REFRESH_COOKIE in resp.cookies
    me = await client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "paul.durand@example.com"


async def test_login_requires_verified_account(client):
    await client.post("/auth/signup", json=SIGNUP)

    resp = await client.post("/auth/login", json={"email": "paul.durand@example.com", "password": PASSWORD})

    assert resp.status_code == 401


async def test_verify_with_expired_code_keeps_account_unverified(client, mailer, database):
    await client.post("/auth/signup", json=SIGNUP)
    code = mailer.last_code("paul.durand@example.com")
    async with database.session() as session:
        await session.execute(
            update(User)
            .where(User.email == "paul.durand@example.com")
            .values(confirm_expires=utcnow() - timedelta(minutes=1))
        )
        await session.commit()

    resp = await client.post("/auth/verifmail", json={"email": "paul.durand@example.com", "code": code})

    assert resp.status_code == 400
    assert "expired" in resp.json()["detail"]
    user = await fetch_user(database, "paul.durand@example.com")
    assert not user.is_verified


async def test_verify_with_wrong_code(client):
    await client.post("/auth/signup", json=SIGNUP)

    resp = await client.post("/auth/verifmail", json={"email": "paul.durand@example.com", "code": "WRONG1"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Incorrect code."


async def test_resend_code_replaces_previous_code(client, mailer):
    await client.post("/auth/signup", json=SIGNUP)
    first = mailer.last_code("paul.durand@example.com")

    resp = await client.post("/auth/resend-code", json={"email": "paul.durand@example.com"})
    assert resp.status_code == 200
    second = mailer.last_code("paul.durand@example.com")

    if first != second:
        resp = await client.post("/auth/verifmail", json={"email": "paul.durand@example.com", "code": first})
        assert resp.status_code == 400
    resp = await client.post("/auth/verifmail", json={"email": "paul.durand@example.com", "code": second})
    assert resp.status_code == 200


async def test_reset_code_cannot_be_reused(client, mailer):
    await signup_and_verify(client, mailer)
    assert (await client.post("/auth/forgot", json={"email": "paul.durand@example.com"})).status_code == 200
    code = mailer.last_code("paul.durand@example.com")
    body = {"email": "paul.durand@example.com", "code": code, "newPassword": "Another456?"}

    assert (await client.post("/auth/reset-password", json=body)).status_code == 200
    again = await client.post("/auth/reset-password", json={**body, "newPassword": "Third789#x"})

    assert again.status_code == 400
    login = await client.post("/auth/login", json={"email": "paul.durand@example.com", "password": "Another456?"})
    assert login.status_code == 200


async def test_forgot_requires_verified_account(client):
    await client.post("/auth/signup", json=SIGNUP)

    resp = await client.post("/auth/forgot", json={"email": "paul.durand@example.com"})

    assert resp.status_code == 400


async def test_refresh_issues_new_access_token(client, mailer):
    await signup_and_verify(client, mailer)
    await client.post("/auth/login", json={"email": "paul.durand@example.com", "password": PASSWORD})

    resp = await client.post("/auth/refresh")

    assert resp.status_code == 200
    assert "jwt" in resp.cookies


async def test_refresh_failure_revokes_stored_token(client, make_user, database):
    user = await make_user()
    stale = create_refresh_token({"sub": user.id, "userId": user.id}, timedelta(seconds=-5))
    async with database.session() as session:
        await session.execute(update(User).where(User.id == user.id).values(refresh_token=stale))
        await session.commit()
    client.cookies.set(REFRESH_COOKIE, stale)

    resp = await client.post("/auth/refresh")

    assert resp.status_code == 401
    cleared = " ".join(resp.headers.get_list("set-cookie"))
    assert "jwt=" in cleared and f"{REFRESH_COOKIE}=" in cleared
    assert (await fetch_user(database, user.email)).refresh_token is None


async def test_logout_drops_refresh_token(client, mailer, database):
    await signup_and_verify(client, mailer)
    await client.post("/auth/login", json={"email": "paul.durand@example.com", "password": PASSWORD})

    resp = await client.post("/auth/logout")

    assert resp.status_code == 200
    assert (await fetch_user(database, "paul.durand@example.com")).refresh_token is None


async def test_missing_token_is_401_and_wrong_role_is_403(client, make_user):
    assert (await client.get("/cards/admin")).status_code == 401

    login_as(client, await make_user())
    assert (await client.get("/cards/admin")).status_code == 403


async def test_admin_can_delete_user(client, admin, make_user, database):
    learner = await make_user()

    resp = await client.delete(f"/users/{learner.id}")

    assert resp.status_code == 200
    assert await fetch_user(database, learner.email) is None
    assert (await client.delete(f"/users/{learner.id}")).status_code == 404


async def test_profile_returns_session_user(client, make_user):
    login_as(client, await make_user())

    resp = await client.get("/users/profile")

    assert resp.status_code == 200
    assert resp.json()["user"]["prenom"] == "alice"


async def test_reset_with_expired_code_is_rejected(client, mailer, database):
    await signup_and_verify(client, mailer)
    await client.post("/auth/forgot", json={"email": "paul.durand@example.com"})
    code = mailer.last_code("paul.durand@example.com")
    async with database.session() as session:
        await session.execute(
            update(User)
            .where(User.email == "paul.durand@example.com")
            .values(confirm_expires=utcnow() - timedelta(minutes=1))
        )
        await session.commit()

    resp = await client.post(
        "/auth/reset-password",
        json={"email": "paul.durand@example.com", "code": code, "newPassword": "Another456?"},
    )

    assert resp.status_code == 400
    assert "expired" in resp.json()["detail"]
    user = await fetch_user(database, "paul.durand@example.com")
    assert user.confirm is not None and user.confirm_expires is not None
    login = await client.post("/auth/login", json={"email": "paul.durand@example.com", "password": PASSWORD})
    assert login.status_code == 200


async def test_signup_rejects_names_equal_without_spaces(client):
    await client.post("/auth/signup", json={**SIGNUP, "nom": "De La", "prenom": "Marie"})

    resp = await client.post(
        "/auth/signup", json={**SIGNUP, "nom": "DELA", "prenom": "marie", "email": "other@example.com"}
    )

    assert resp.status_code == 409


async def test_signup_is_undone_when_the_code_cannot_be_sent(client, mailer, database, monkeypatch):
    async def broken(to, subject, text, html=None):
        raise InternalError("Could not send email")

    monkeypatch.setattr(mailer, "send", broken)

    resp = await client.post("/auth/signup", json=SIGNUP)

    assert resp.status_code == 500
    assert await fetch_user(database, "paul.durand@example.com") is None
