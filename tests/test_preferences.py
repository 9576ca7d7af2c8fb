"""Tests for device-scoped preferences."""

import pytest

from family_ledger.models.ledger import Family
from family_ledger.services.preferences import (
    SETTINGS_KEY,
    LocalPreferences,
    is_values_hidden,
    load_display_settings,
    save_display_setting,
    sync_display_settings,
    toggle_values_hidden,
    visibility_key,
)


@pytest.fixture
def prefs(tmp_path):
    return LocalPreferences(tmp_path / "prefs" / "preferences.json")


class TestLocalPreferences:
    """Tests for the JSON key/value store."""

    def test_set_get_remove(self, prefs):
        """Test basic key/value operations."""
        assert prefs.get("missing", "default") == "default"
        prefs.set("last_profile_id", "mom")
        assert prefs.get("last_profile_id") == "mom"
        assert prefs.remove("last_profile_id") is True
        assert prefs.remove("last_profile_id") is False

    def test_persists_across_instances(self, prefs):
        """Test that values survive a restart."""
        prefs.set(SETTINGS_KEY, {"currency": "USD"})
        assert LocalPreferences(prefs.path).get(SETTINGS_KEY) == {"currency": "USD"}

    def test_corrupt_file_reads_as_empty(self, prefs):
        """Test that an unreadable file does not crash the app."""
        prefs.path.parent.mkdir(parents=True, exist_ok=True)
        prefs.path.write_text("{not json", encoding="utf-8")
        assert prefs.get("anything") is None


class TestDisplaySettings:
    """Tests for currency/language settings."""

    def test_defaults_from_settings(self, prefs, settings):
        """Test the configured defaults apply when nothing is stored."""
        display = load_display_settings(prefs, settings)
        assert (display.currency, display.language) == ("VND", "en")

    def test_save_setting(self, prefs, settings):
        """Test changing one setting keeps the other."""
        save_display_setting(prefs, "language", "vi")
        display = load_display_settings(prefs, settings)
        assert (display.currency, display.language) == ("VND", "vi")

    @pytest.mark.parametrize("key,value", [("currency", "EUR"), ("theme", "dark")])
    def test_invalid_setting_rejected(self, prefs, key, value):
        """Test unsupported keys and values."""
        with pytest.raises(ValueError):
            save_display_setting(prefs, key, value)
        assert prefs.get(SETTINGS_KEY) is None

    def test_cloud_settings_win(self, prefs, settings):
        """Test that the family document overrides local values."""
        save_display_setting(prefs, "currency", "VND")
        family = Family(id="f1", currency="USD")
        display = sync_display_settings(prefs, family, settings)
        assert display.currency == "USD"
        assert load_display_settings(prefs, settings).currency == "USD"

    def test_no_family_keeps_local(self, prefs, settings):
        """Test syncing while signed out."""
        save_display_setting(prefs, "language", "vi")
        assert sync_display_settings(prefs, None, settings).language == "vi"


class TestVisibilityToggle:
    """Tests for the hide-amounts toggle."""

    def test_per_profile_keys(self):
        """Test key naming with and without a profile."""
        assert visibility_key("mom") == "visibility_hidden_mom"
        assert visibility_key(None) == "visibility_hidden_default"

    def test_toggle(self, prefs):
        """Test toggling is scoped to one profile."""
        assert toggle_values_hidden(prefs, "mom") is True
        assert is_values_hidden(prefs, "mom")
        assert not is_values_hidden(prefs, "dad")
        assert toggle_values_hidden(prefs, "mom") is False
