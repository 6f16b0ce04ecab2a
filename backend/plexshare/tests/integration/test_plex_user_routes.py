"""Integration tests for /api/v1/plex."""

import pytest

from plexshare.integrations.plex import PlexConnectionError, PlexUnexpectedStatusError
from plexshare.models import InviteCode, PlexUser

USERS_PATH = "/api/v1/plex/users"


@pytest.fixture
def known_users(directory, settings):
    directory.save_plex_user(
        PlexUser(id=settings.plex_admin_user_id, uuid="u-1", username="owner",
                 email="owner@example.com", is_admin=True)
    )
    directory.save_plex_user(PlexUser(id=200, uuid="u-200", username="bob", email="bob@example.com"))
    directory.save_plex_user(PlexUser(id=201, uuid="u-201", username="amy", email=None))


class TestListing:

    def test_list_marks_access(self, client, as_admin, known_users, mock_plex):
        mock_plex.get_user_ids_with_access.return_value = {200}

        response = client.get(USERS_PATH)

        assert response.status_code == 200
        access = {u["username"]: u["has_access"] for u in response.json()["users"]}
        assert access == {"owner": True, "bob": True, "amy": False}
        mock_plex.get_user_ids_with_access.assert_awaited_once()

    def test_list_plex_failure(self, client, as_admin, known_users, mock_plex):
        mock_plex.get_user_ids_with_access.side_effect = PlexConnectionError()

        assert client.get(USERS_PATH).status_code == 502

    def test_get_user(self, client, as_admin, known_users):
        response = client.get(f"{USERS_PATH}/200")

        assert response.status_code == 200
        assert response.json()["email"] == "bob@example.com"
        assert client.get(f"{USERS_PATH}/999").status_code == 404

    def test_user_invites(self, client, as_admin, known_users, directory):
        invite_code = directory.save_invite_code(InviteCode(code="WELCOME", entitlement_name="plex"))
        directory.associate_user_with_invite_code(200, invite_code.id)

        response = client.get(f"{USERS_PATH}/200/invites")

        assert response.status_code == 200
        invites = response.json()["invites"]
        assert [i["code"] for i in invites] == ["WELCOME"]
        assert invites[0]["has_valid_access"] is True

    def test_update_notes(self, client, as_admin, known_users):
        response = client.patch(f"{USERS_PATH}/200/notes", json={"notes": "cousin"})

        assert response.status_code == 200
        assert response.json()["notes"] == "cousin"
        assert client.patch(f"{USERS_PATH}/999/notes", json={"notes": "x"}).status_code == 404

    def test_access_check(self, client, as_admin, mock_plex, settings):
        mock_plex.user_has_access.return_value = True

        assert client.get(f"{USERS_PATH}/200/access").json() == {"user_id": 200, "has_access": True}

        admin_id = settings.plex_admin_user_id
        assert client.get(f"{USERS_PATH}/{admin_id}/access").json()["has_access"] is True
        mock_plex.user_has_access.assert_awaited_once_with(200)


class TestGrantAndRevoke:

    def test_grant(self, client, as_admin, known_users, mock_plex):
        response = client.post(f"{USERS_PATH}/200/grant")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["action"] == "grant"
        mock_plex.share_library.assert_awaited_once_with("bob@example.com")

    def test_grant_without_email(self, client, as_admin, known_users, mock_plex):
        assert client.post(f"{USERS_PATH}/201/grant").status_code == 400
        mock_plex.share_library.assert_not_awaited()

    def test_grant_when_already_shared(self, client, as_admin, known_users, mock_plex):
        mock_plex.user_has_access.return_value = True

        assert client.post(f"{USERS_PATH}/200/grant").status_code == 400
        mock_plex.share_library.assert_not_awaited()

    def test_grant_plex_failure(self, client, as_admin, known_users, mock_plex):
        mock_plex.share_library.side_effect = PlexConnectionError()

        assert client.post(f"{USERS_PATH}/200/grant").status_code == 502

    def test_revoke(self, client, as_admin, known_users, mock_plex):
        response = client.post(f"{USERS_PATH}/200/revoke")

        assert response.status_code == 200
        assert response.json()["action"] == "revoke"
        mock_plex.unshare_library.assert_awaited_once_with(200)

    def test_revoke_admin_forbidden(self, client, as_admin, known_users, settings, mock_plex):
        response = client.post(f"{USERS_PATH}/{settings.plex_admin_user_id}/revoke")

        assert response.status_code == 403
        mock_plex.unshare_library.assert_not_awaited()

    def test_revoke_plex_failure(self, client, as_admin, known_users, mock_plex):
        mock_plex.unshare_library.side_effect = PlexUnexpectedStatusError(500)

        assert client.post(f"{USERS_PATH}/200/revoke").status_code == 502


class TestDelete:

    def test_delete_unshares_then_removes(self, client, as_admin, known_users, directory, mock_plex):
        directory.save_plex_token(200, "bob-token")

        response = client.delete(f"{USERS_PATH}/200")

        assert response.status_code == 200
        mock_plex.unshare_library.assert_awaited_once_with(200)
        assert directory.get_plex_user(200) is None
        assert directory.get_plex_token(200) is None

    def test_delete_kept_when_unshare_fails(self, client, as_admin, known_users, directory, mock_plex):
        mock_plex.unshare_library.side_effect = PlexConnectionError()

        assert client.delete(f"{USERS_PATH}/200").status_code == 502
        assert directory.get_plex_user(200) is not None

    def test_delete_admin_forbidden(self, client, as_admin, known_users, settings):
        assert client.delete(f"{USERS_PATH}/{settings.plex_admin_user_id}").status_code == 403

    def test_delete_unknown(self, client, as_admin):
        assert client.delete(f"{USERS_PATH}/999").status_code == 404


@pytest.mark.security
class TestAuthorization:

    def test_non_admin_rejected(self, client, as_user, known_users):
        assert client.get(USERS_PATH).status_code == 403
        assert client.post(f"{USERS_PATH}/201/grant").status_code == 403
        assert client.delete(f"{USERS_PATH}/201").status_code == 403

    def test_own_access_for_any_caller(self, client, as_user, mock_plex):
        mock_plex.user_has_access.return_value = True

        response = client.get("/api/v1/plex/access")

        assert response.json() == {"user_id": 200, "has_access": True}

    def test_own_access_requires_login(self, client):
        assert client.get("/api/v1/plex/access").status_code == 401


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
