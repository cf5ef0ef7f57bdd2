# Registration, login and token tests.
from datetime import timedelta

from quizhub.main import app, get_current_claims
from quizhub.models import User
from quizhub.security import create_access_token, validate_access_token


def _register(client, username="new_user", phone="+15551234567", code="123456", role=None):
    payload = {
        "phone_number": phone,
        "code": code,
        "username": username,
        "password": "secret",
    }
    if role is not None:
        payload["role"] = role
    return client.post("/confirm_register", json=payload)


# Ensure a verification code is sent to a valid number.
def test_start_verification_sends_otp(client, otp_client):
    response = client.post("/start_verification", json={"phone_number": "+15551234567"})

    assert response.status_code == 200
    assert otp_client.sent == ["+15551234567"]


# Ensure numbers outside E.164 are rejected before the provider is called.
def test_start_verification_rejects_non_e164_numbers(client, otp_client):
    response = client.post("/start_verification", json={"phone_number": "5551234567"})

    assert response.status_code == 400
    assert response.json()["detail"] == "phone_number must be in E.164 format"
    assert otp_client.sent == []


# Ensure a correct code registers a user with a hashed password and no XP.
def test_confirm_register_creates_user(client, db):
    response = _register(client)

    assert response.status_code == 201
    assert response.json()["message"] == "User registered"

    user = db.query(User).filter(User.username == "new_user").one_or_none()
    assert user is not None
    assert user.role == "User"
    assert user.xp == 0
    assert user.password_hash != "secret"
    assert user.quiz_history == []


# Ensure role "admin" registers an Admin account.
def test_confirm_register_with_admin_role(client, db):
    assert _register(client, role="admin").status_code == 201

    user = db.query(User).filter(User.username == "new_user").one()
    assert user.role == "Admin"


# Ensure a wrong code creates no user.
def test_confirm_register_rejects_bad_code(client, db):
    response = _register(client, code="000000")

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid OTP"
    assert db.query(User).count() == 0


# Ensure phone numbers and usernames stay unique.
def test_confirm_register_rejects_duplicates(client):
    assert _register(client).status_code == 201

    same_phone = _register(client, username="other")
    assert same_phone.status_code == 409
    assert same_phone.json()["detail"] == "Phone Number already in use"

    same_name = _register(client, phone="+15559876543")
    assert same_name.status_code == 409
    assert same_name.json()["detail"] == "Username already in use"


# Ensure login returns a token carrying the user id and role.
def test_login_returns_token_with_claims(client):
    assert _register(client).status_code == 201

    response = client.post(
        "/login", json={"phone_number": "+15551234567", "password": "secret"}
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "Login successful"
    assert payload["user"]["username"] == "new_user"
    claims = validate_access_token(payload["token"])
    assert claims["sub"] == payload["user"]["id"]
    assert claims["role"] == "User"


# Ensure unknown phones and wrong passwords both return 401 with a login body.
def test_login_failures_are_unauthorized(client):
    assert _register(client).status_code == 201

    missing = client.post("/login", json={"phone_number": "+15550000000", "password": "x"})
    assert missing.status_code == 401
    assert missing.json() == {"message": "User not found", "token": None, "user": None}

    wrong = client.post("/login", json={"phone_number": "+15551234567", "password": "x"})
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Invalid password"


# Ensure an expired token is refused.
def test_expired_token_is_rejected(client, make_user):
    user, _ = make_user("alice")
    token = create_access_token(user.id, user.role, expires_delta=timedelta(seconds=-5))

    response = client.get(f"/users/{user.id}", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


# Ensure tokens signed with another secret do not validate.
def test_token_signed_with_other_secret_is_rejected():
    token = create_access_token("someone", "User", secret="another-secret")

    assert validate_access_token(token) is None


# Ensure users can replace their own profile but not someone else's.
def test_update_profile_by_owner_only(client, make_user):
    alice, alice_headers = make_user("alice")
    _, bob_headers = make_user("bob")
    profile = {"profile": {"bio": "Quiz fan", "country": "NG"}}

    response = client.put(f"/users/{alice.id}/profile", json=profile, headers=alice_headers)
    assert response.status_code == 200
    assert response.json()["profile"] == {
        "avatar": None,
        "bio": "Quiz fan",
        "preferred_language": None,
        "country": "NG",
    }

    forbidden = client.put(f"/users/{alice.id}/profile", json=profile, headers=bob_headers)
    assert forbidden.status_code == 403


# Ensure an unknown user id returns 404.
def test_get_user_not_found(client, make_user):
    _, headers = make_user("alice")

    response = client.get("/users/00000000-0000-0000-0000-000000000000", headers=headers)

    assert response.status_code == 404


# Ensure the caller identity comes from the claims dependency and can be swapped out.
def test_claims_dependency_can_be_overridden(client, make_user):
    user, _ = make_user("alice")
    app.dependency_overrides[get_current_claims] = lambda: {"sub": user.id, "role": "User"}

    response = client.get(f"/users/{user.id}")

    assert response.status_code == 200
    assert response.json()["username"] == "alice"
