"""Tests for session state and the persisted theme preference."""
import json

import pytest

from session import NOT_CONFIGURED, SessionState
from theme import STORAGE_KEY, LocalStorage, ThemeState


class TestSessionState:

    @pytest.mark.anyio
    async def test_load_restores_existing_session(self, gateway):
        user_id = gateway.register_user("ada@example.com", "secret")
        await gateway.sign_in("ada@example.com", "secret")

        session = SessionState(gateway)
        assert session.loading is True
        await session.load()

        assert session.user_id == user_id
        assert session.loading is False

    @pytest.mark.anyio
    async def test_auth_events_update_identity_and_notify(self, gateway):
        gateway.register_user("ada@example.com", "secret", user_id="ada")
        session = SessionState(gateway)
        await session.load()
        seen = []
        session.subscribe(lambda identity: seen.append(identity.id if identity else None))

        assert await session.sign_in("ada@example.com", "secret") is None
        assert session.user_id == "ada"
        assert await session.sign_out() is None
        assert session.identity is None
        assert seen == ["ada", None]

    @pytest.mark.anyio
    async def test_unsubscribe_stops_notifications(self, gateway):
        gateway.register_user("ada@example.com", "secret")
        session = SessionState(gateway)
        await session.load()
        seen = []
        unsubscribe = session.subscribe(seen.append)
        unsubscribe()

        await session.sign_in("ada@example.com", "secret")
        assert seen == []

    @pytest.mark.anyio
    async def test_sign_in_error_returns_message(self, gateway):
        session = SessionState(gateway)
        await session.load()
        assert await session.sign_in("nobody@example.com", "x") == "Invalid login credentials"
        assert session.identity is None

    @pytest.mark.anyio
    async def test_sign_up_forwards_trimmed_display_name(self, gateway):
        session = SessionState(gateway)
        assert await session.sign_up("new@example.com", "pw", "  Grace ") is None
        _, user_id = gateway.users["new@example.com"]
        assert gateway.profiles[user_id]["display_name"] == "Grace"

    @pytest.mark.anyio
    async def test_close_detaches_from_gateway(self, gateway):
        session = SessionState(gateway)
        await session.load()
        session.close()
        assert gateway._listeners == []

    @pytest.mark.anyio
    async def test_without_backend(self):
        session = SessionState(None)
        await session.load()
        assert session.loading is False
        assert await session.sign_in("a@b.c", "pw") == NOT_CONFIGURED


class TestLocalStorage:

    def test_round_trip_and_missing_key(self, tmp_path):
        storage = LocalStorage(tmp_path / "nested" / "storage.json")
        assert storage.get_item(STORAGE_KEY) is None
        storage.set_item(STORAGE_KEY, "dark")
        assert LocalStorage(tmp_path / "nested" / "storage.json").get_item(STORAGE_KEY) == "dark"

    def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("{not json")
        assert LocalStorage(path).get_item(STORAGE_KEY) is None


class TestThemeState:

    def test_defaults_to_system(self, tmp_path):
        theme = ThemeState(LocalStorage(tmp_path / "s.json"), system_theme="light")
        assert theme.mode == "system"
        assert theme.theme == "light"
        assert theme.theme_color == "#f4fbf7"

    def test_unknown_stored_value_reads_as_system(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text(json.dumps({STORAGE_KEY: "sepia"}))
        assert ThemeState(LocalStorage(path)).mode == "system"

    def test_toggle_from_system_goes_to_opposite_then_back(self, tmp_path):
        storage = LocalStorage(tmp_path / "s.json")
        theme = ThemeState(storage, system_theme="dark")

        theme.toggle_mode()
        assert theme.mode == "light"
        assert storage.get_item(STORAGE_KEY) == "light"

        theme.toggle_mode()
        assert theme.mode == "system"
        assert storage.get_item(STORAGE_KEY) == "system"

    def test_mode_persists_across_instances(self, tmp_path):
        path = tmp_path / "s.json"
        ThemeState(LocalStorage(path)).set_mode("dark")
        assert ThemeState(LocalStorage(path), system_theme="light").theme == "dark"

    def test_invalid_mode_rejected(self, tmp_path):
        theme = ThemeState(LocalStorage(tmp_path / "s.json"))
        with pytest.raises(ValueError):
            theme.set_mode("blue")

    def test_listeners_hear_effective_theme_changes(self, tmp_path):
        theme = ThemeState(LocalStorage(tmp_path / "s.json"), system_theme="dark")
        seen = []
        unsubscribe = theme.subscribe(seen.append)

        theme.set_system_theme("light")
        theme.set_mode("light")  # effective theme unchanged
        theme.set_mode("dark")
        unsubscribe()
        theme.set_mode("light")

        assert seen == ["light", "dark"]
