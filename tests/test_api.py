"""HTTP tests for /api/v1/users through FastAPI TestClient (SQLite, fake media uploader)."""

import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from app.api.v1.users import get_media_uploader
from app.core.config import get_settings
from app.core.database import SessionLocal, engine
from app.main import app
from app.models import Base, User
from app.schemas.users import (
    EMAIL_MAX_LENGTH,
    FULL_NAME_MAX_LENGTH,
    PASSWORD_MAX_LENGTH,
    USERNAME_MAX_LENGTH,
)
from support import FakeUploader, add_video, set_watch_history, subscribe

PREFIX = "/api/v1/users"
AVATAR = ("avatar.png", b"\x89PNG avatar bytes", "image/png")
COVER = ("cover.jpg", b"\xff\xd8 cover bytes", "image/jpeg")


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        Base.metadata.create_all(engine)
        self.uploader = FakeUploader()
        app.dependency_overrides[get_media_uploader] = lambda: self.uploader
        self.client = TestClient(app, base_url="https://testserver")
        self.db = SessionLocal()

    def tearDown(self) -> None:
        self.db.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(engine)

    def register(self, username: str = "alice", password: str = "secret-pass-1", **files):
        return self.client.post(
            f"{PREFIX}/register",
            data={
                "fullName": f"{username.title()} Example",
                "email": f"{username}@example.com",
                "username": username,
                "password": password,
            },
            files=files or {"avatar": AVATAR},
        )

    def login(self, username: str = "alice", password: str = "secret-pass-1"):
        return self.client.post(
            f"{PREFIX}/login", json={"username": username, "password": password}
        )

    def stored_user(self, username: str) -> User:
        self.db.expire_all()
        return self.db.query(User).filter(User.username == username).one()


class TestRegisterEndpoint(ApiTestCase):
    def test_register_returns_envelope_without_secrets(self) -> None:
        resp = self.register(avatar=AVATAR, coverImage=COVER)
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["statusCode"], 201)
        self.assertEqual(body["message"], "User registered successfully")
        data = body["data"]
        self.assertEqual(data["username"], "alice")
        self.assertEqual(data["fullName"], "Alice Example")
        self.assertTrue(data["avatar"].startswith("https://media.test/"))
        self.assertTrue(data["coverImage"].endswith(".jpg"))
        self.assertNotIn("password", data)
        self.assertNotIn("passwordHash", data)
        self.assertNotIn("refreshToken", data)
        self.assertEqual(
            self.uploader.contents, [b"\x89PNG avatar bytes", b"\xff\xd8 cover bytes"]
        )

    def test_temp_files_are_removed(self) -> None:
        self.register()
        temp_dir = Path(get_settings().UPLOAD_TEMP_DIR)
        self.assertEqual(list(temp_dir.iterdir()), [])

    def test_missing_avatar(self) -> None:
        resp = self.register(coverImage=COVER)
        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertFalse(body["success"])
        self.assertIsNone(body["data"])
        self.assertEqual(body["message"], "Avatar file is required")
        self.assertEqual(list(Path(get_settings().UPLOAD_TEMP_DIR).iterdir()), [])

    def test_blank_field(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/register",
            data={"fullName": "", "email": "a@b.c", "username": "a", "password": "pw"},
            files={"avatar": AVATAR},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "All fields are required")

    def test_duplicate(self) -> None:
        self.assertEqual(self.register().status_code, 201)
        resp = self.register()
        self.assertEqual(resp.status_code, 409)

    def test_longest_accepted_password_can_log_in(self) -> None:
        password = "p" * PASSWORD_MAX_LENGTH
        self.assertEqual(self.register(password=password).status_code, 201)
        resp = self.login(password=password)
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["success"])

    def test_over_long_fields_are_rejected(self) -> None:
        fields = {
            "fullName": "A" * (FULL_NAME_MAX_LENGTH + 1),
            "email": "a" * EMAIL_MAX_LENGTH + "@example.com",
            "username": "u" * (USERNAME_MAX_LENGTH + 1),
            "password": "p" * (PASSWORD_MAX_LENGTH + 1),
        }
        valid = {
            "fullName": "Alice Example",
            "email": "alice@example.com",
            "username": "alice",
            "password": "secret-pass-1",
        }
        for name, value in fields.items():
            with self.subTest(field=name):
                resp = self.client.post(
                    f"{PREFIX}/register",
                    data={**valid, name: value},
                    files={"avatar": AVATAR},
                )
                self.assertEqual(resp.status_code, 400)
                self.assertFalse(resp.json()["success"])
        self.db.expire_all()
        self.assertEqual(self.db.query(User).count(), 0)
        self.assertEqual(self.uploader.calls, [])


class TestSessionEndpoints(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.assertEqual(self.register().status_code, 201)

    def test_login_sets_http_only_secure_cookies(self) -> None:
        resp = self.login()
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["user"]["username"], "alice")
        self.assertNotIn("refreshToken", data["user"])

        set_cookies = resp.headers.get_list("set-cookie")
        self.assertEqual(len(set_cookies), 2)
        for header in set_cookies:
            lowered = header.lower()
            self.assertIn("httponly", lowered)
            self.assertIn("secure", lowered)
        self.assertEqual(resp.cookies["accessToken"], data["accessToken"])
        self.assertEqual(resp.cookies["refreshToken"], data["refreshToken"])
        self.assertEqual(self.stored_user("alice").refresh_token, data["refreshToken"])

    def test_login_without_identifier(self) -> None:
        resp = self.client.post(f"{PREFIX}/login", json={"password": "secret-pass-1"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Username or email is required")

    def test_login_wrong_password(self) -> None:
        resp = self.login(password="bad-password")
        self.assertEqual(resp.status_code, 401)
        self.assertNotIn("set-cookie", resp.headers)

    def test_malformed_body_is_400(self) -> None:
        resp = self.client.post(f"{PREFIX}/login", json=["not", "an", "object"])
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.json()["success"])

    def test_current_user_with_cookie_and_bearer(self) -> None:
        token = self.login().json()["data"]["accessToken"]
        resp = self.client.get(f"{PREFIX}/current-user")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["data"]["username"], "alice")

        self.client.cookies.clear()
        self.assertEqual(self.client.get(f"{PREFIX}/current-user").status_code, 401)
        resp = self.client.get(
            f"{PREFIX}/current-user", headers={"Authorization": f"Bearer {token}"}
        )
        self.assertEqual(resp.status_code, 200)

    def test_invalid_access_token(self) -> None:
        resp = self.client.get(
            f"{PREFIX}/current-user", headers={"Authorization": "Bearer garbage"}
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["message"], "Invalid access token")

    def test_refresh_with_cookie_then_stale_body_token(self) -> None:
        old = self.login().json()["data"]["refreshToken"]
        resp = self.client.post(f"{PREFIX}/refresh-token")
        self.assertEqual(resp.status_code, 200)
        new = resp.json()["data"]["refreshToken"]
        self.assertNotEqual(new, old)
        self.assertEqual(resp.cookies["refreshToken"], new)

        self.client.cookies.clear()
        resp = self.client.post(f"{PREFIX}/refresh-token", json={"refreshToken": old})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["message"], "Refresh token is expired or used")

    def test_refresh_without_token(self) -> None:
        resp = self.client.post(f"{PREFIX}/refresh-token")
        self.assertEqual(resp.status_code, 401)

    def test_logout_clears_token_and_cookies(self) -> None:
        self.login()
        resp = self.client.post(f"{PREFIX}/logout")
        self.assertEqual(resp.status_code, 200)
        cleared = " ".join(resp.headers.get_list("set-cookie")).lower()
        self.assertIn("accesstoken=", cleared)
        self.assertIn("refreshtoken=", cleared)
        self.assertIn("max-age=0", cleared)
        self.assertIsNone(self.stored_user("alice").refresh_token)
        self.assertNotIn("accessToken", self.client.cookies)

    def test_logout_requires_auth(self) -> None:
        self.assertEqual(self.client.post(f"{PREFIX}/logout").status_code, 401)


class TestProfileEndpoints(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.register()
        self.login()

    def test_change_password(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/change-password",
            json={"oldPassword": "wrong", "newPassword": "new-secret-2"},
        )
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post(
            f"{PREFIX}/change-password",
            json={"oldPassword": "secret-pass-1", "newPassword": "new-secret-2"},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.login(password="secret-pass-1").status_code, 401)
        self.assertEqual(self.login(password="new-secret-2").status_code, 200)

    def test_update_account(self) -> None:
        resp = self.client.patch(
            f"{PREFIX}/update-account",
            json={"fullName": "Alice Liddell", "email": "Alice@Wonder.land"},
        )
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["fullName"], "Alice Liddell")
        self.assertEqual(data["email"], "alice@wonder.land")
        self.assertNotIn("refreshToken", data)

    def test_update_account_missing_field(self) -> None:
        resp = self.client.patch(f"{PREFIX}/update-account", json={"fullName": "A"})
        self.assertEqual(resp.status_code, 400)

    def test_update_avatar(self) -> None:
        resp = self.client.patch(
            f"{PREFIX}/avatar", files={"avatar": ("new.png", b"new avatar", "image/png")}
        )
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["data"]["avatar"].endswith(".png"))
        self.assertEqual(self.uploader.contents[-1], b"new avatar")

    def test_update_avatar_missing_file(self) -> None:
        self.assertEqual(self.client.patch(f"{PREFIX}/avatar").status_code, 400)

    def test_update_cover_image_uploads_cover(self) -> None:
        resp = self.client.patch(
            f"{PREFIX}/cover-image",
            files={"coverImage": ("c.jpg", b"new cover", "image/jpeg")},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.uploader.contents[-1], b"new cover")
        self.assertTrue(resp.json()["data"]["coverImage"].endswith(".jpg"))

    def test_upload_failure(self) -> None:
        self.uploader.fail = True
        resp = self.client.patch(
            f"{PREFIX}/avatar", files={"avatar": ("new.png", b"x", "image/png")}
        )
        self.assertEqual(resp.status_code, 400)


class TestReadViews(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.register("alice")
        self.register("bob")
        self.alice = self.stored_user("alice")
        self.bob = self.stored_user("bob")
        self.login("alice")

    def test_channel_profile(self) -> None:
        subscribe(self.db, self.alice, self.bob)
        resp = self.client.get(f"{PREFIX}/c/BOB")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["username"], "bob")
        self.assertEqual(data["subscribersCount"], 1)
        self.assertEqual(data["channelsSubscribedToCount"], 0)
        self.assertTrue(data["isSubscribed"])

    def test_channel_not_found(self) -> None:
        resp = self.client.get(f"{PREFIX}/c/nobody")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["message"], "Channel does not exist")

    def test_watch_history(self) -> None:
        v1 = add_video(self.db, self.bob, "one")
        v2 = add_video(self.db, self.bob, "two")
        set_watch_history(self.db, self.alice, [v2, v1])
        resp = self.client.get(f"{PREFIX}/history")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual([v["title"] for v in data], ["two", "one"])
        self.assertEqual(set(data[0]["owner"]), {"fullName", "username", "avatar"})
        self.assertEqual(data[0]["owner"]["username"], "bob")


class TestHealth(unittest.TestCase):
    def test_health_reports_database(self) -> None:
        resp = TestClient(app).get("/api/v1/health/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["database"], "connected")


if __name__ == "__main__":
    unittest.main()
