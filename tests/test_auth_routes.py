from unittest.mock import AsyncMock, patch

from conftest import register

from arab_exam.google_auth import GoogleAuthError, GoogleUser


class TestRegisterLogin:
	def test_register_returns_session(self, client):
		r = client.post(
			"/api/auth/register",
			json={"email": "New@Mail.uz", "password": "secret123", "fullName": "Ali"},
		)
		assert r.status_code == 201
		body = r.json()
		assert body["user"]["email"] == "new@mail.uz"
		assert body["user"]["subscriptionTier"] == "FREE"
		assert body["expiresIn"] == 900
		assert body["accessToken"] and body["refreshToken"]

	def test_duplicate_email(self, client):
		register(client)
		r = client.post("/api/auth/register", json={"email": "student@mail.uz", "password": "secret123", "fullName": "X"})
		assert r.status_code == 409

	def test_validation_errors_are_400(self, client):
		r = client.post("/api/auth/register", json={"email": "not-an-email", "password": "1", "fullName": ""})
		assert r.status_code == 400
		assert r.json()["detail"] == "Validation error"
		assert r.json()["errors"]

	def test_login(self, client):
		register(client)
		r = client.post("/api/auth/login", json={"email": "student@mail.uz", "password": "secret123"})
		assert r.status_code == 200
		assert r.json()["user"]["fullName"] == "Test Student"

	def test_login_wrong_password(self, client):
		register(client)
		r = client.post("/api/auth/login", json={"email": "student@mail.uz", "password": "wrong-one"})
		assert r.status_code == 401

	def test_me_requires_token(self, client):
		assert client.get("/api/auth/me").status_code == 401

	def test_me(self, client, student):
		headers, user = student
		r = client.get("/api/auth/me", headers=headers)
		assert r.status_code == 200
		assert r.json()["user"]["id"] == user["id"]


class TestTokens:
	def test_refresh(self, client):
		r = client.post("/api/auth/register", json={"email": "r@mail.uz", "password": "secret123", "fullName": "R"})
		refresh = r.json()["refreshToken"]
		r = client.post("/api/auth/refresh-token", json={"refreshToken": refresh})
		assert r.status_code == 200
		assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {r.json()['accessToken']}"}).status_code == 200

	def test_refresh_token_is_not_an_access_token(self, client):
		r = client.post("/api/auth/register", json={"email": "r@mail.uz", "password": "secret123", "fullName": "R"})
		refresh = r.json()["refreshToken"]
		assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {refresh}"}).status_code == 401

	def test_invalid_refresh(self, client):
		assert client.post("/api/auth/refresh-token", json={"refreshToken": "garbage"}).status_code == 401


class TestPasswordReset:
	def test_forgot_and_reset(self, client):
		register(client)
		r = client.post("/api/auth/forgot-password", json={"email": "student@mail.uz"})
		assert r.status_code == 200
		token = r.json()["token"]
		assert token in r.json()["resetLink"]

		r = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "brandnew1"})
		assert r.status_code == 200
		r = client.post("/api/auth/login", json={"email": "student@mail.uz", "password": "brandnew1"})
		assert r.status_code == 200

	def test_unknown_email_gives_generic_answer(self, client):
		r = client.post("/api/auth/forgot-password", json={"email": "ghost@mail.uz"})
		assert r.status_code == 200
		assert "token" not in r.json()

	def test_reset_with_bad_token(self, client):
		r = client.post("/api/auth/reset-password", json={"token": "bad", "newPassword": "brandnew1"})
		assert r.status_code == 400


class TestGoogleLogin:
	def test_creates_user(self, client):
		google_user = GoogleUser(sub="g-1", email="g@mail.uz", name="Google User", picture="http://img")
		with patch("arab_exam.routers.auth.verify_google_token", AsyncMock(return_value=google_user)):
			r = client.post("/api/auth/social/google", json={"idToken": "tok"})
		assert r.status_code == 200
		assert r.json()["user"]["avatarUrl"] == "http://img"

		# Password login is refused for Google-only accounts
		r = client.post("/api/auth/login", json={"email": "g@mail.uz", "password": "whatever"})
		assert r.status_code == 401

	def test_links_existing_account(self, client):
		_, user = register(client, email="g@mail.uz")
		google_user = GoogleUser(sub="g-2", email="g@mail.uz", name="Same", picture=None)
		with patch("arab_exam.routers.auth.verify_google_token", AsyncMock(return_value=google_user)):
			r = client.post("/api/auth/social/google", json={"idToken": "tok"})
		assert r.json()["user"]["id"] == user["id"]

	def test_invalid_token(self, client):
		with patch("arab_exam.routers.auth.verify_google_token", AsyncMock(side_effect=GoogleAuthError("Invalid Google token"))):
			r = client.post("/api/auth/social/google", json={"idToken": "tok"})
		assert r.status_code == 401


class TestProfile:
	def test_update_profile(self, client, student):
		headers, _ = student
		r = client.put("/api/profile", headers=headers, json={"fullName": "  New Name ", "languagePreference": "ar"})
		assert r.status_code == 200
		assert r.json()["user"]["fullName"] == "New Name"
		assert r.json()["user"]["languagePreference"] == "ar"

	def test_empty_update(self, client, student):
		headers, _ = student
		assert client.put("/api/profile", headers=headers, json={}).status_code == 400

	def test_change_password(self, client, student):
		headers, _ = student
		r = client.put("/api/profile/password", headers=headers, json={"currentPassword": "nope", "newPassword": "another1"})
		assert r.status_code == 400
		r = client.put("/api/profile/password", headers=headers, json={"currentPassword": "secret123", "newPassword": "another1"})
		assert r.status_code == 200
