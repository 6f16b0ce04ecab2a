"""Unit tests for UserDirectoryService."""

import pytest

from plexshare.services.user_directory_service import PlexAccountDetails, UserDirectoryService


@pytest.fixture
def service(directory, settings) -> UserDirectoryService:
    return UserDirectoryService(directory, settings)


class TestRecordLogin:

    def test_stores_user_and_token(self, service, directory):
        user = service.record_login(
            PlexAccountDetails(id=200, uuid="u-200", username="bob", email="bob@example.com"),
            "bob-token",
        )

        assert user.id == 200
        assert user.is_admin is False
        assert directory.get_plex_token(200) == "bob-token"

    def test_second_login_refreshes(self, service, directory):
        service.record_login(PlexAccountDetails(id=200, username="bob"), "old-token")
        service.update_notes(200, "friend of the family")

        user = service.record_login(PlexAccountDetails(id=200, username="robert"), "new-token")

        assert user.username == "robert"
        assert user.notes == "friend of the family"
        assert directory.get_plex_token(200) == "new-token"

    def test_admin_flag_from_settings(self, service, settings):
        admin_id = settings.plex_admin_user_id

        user = service.record_login(PlexAccountDetails(id=admin_id, username="owner"), "owner-token")

        assert user.is_admin is True

    def test_token_required(self, service, directory):
        with pytest.raises(ValueError):
            service.record_login(PlexAccountDetails(id=200), "")
        assert directory.get_plex_user(200) is None


class TestUserQueries:

    def test_list_get_delete(self, service):
        service.record_login(PlexAccountDetails(id=200, username="bob"), "t1")
        service.record_login(PlexAccountDetails(id=201, username="amy"), "t2")

        assert [u.username for u in service.list_users()] == ["amy", "bob"]
        assert service.get_user(201).username == "amy"

        assert service.delete_user(201) is True
        assert service.get_user(201) is None
        assert service.delete_user(201) is False

    def test_update_notes_unknown_user(self, service):
        assert service.update_notes(999, "x") is None

    def test_list_invites_empty(self, service):
        service.record_login(PlexAccountDetails(id=200, username="bob"), "t1")
        assert service.list_invites(200) == []
