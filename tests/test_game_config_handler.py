"""Property-based and example tests for the Config.wtf editor."""

import tempfile
from pathlib import Path

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from azeroth_winebar.backend.errors import IntegrityError
from azeroth_winebar.backend.handlers.config_handler import ConfigStore
from azeroth_winebar.backend.handlers.game_config_handler import GameConfigHandler, format_setting

# Setting names are identifiers; values never contain quotes or line breaks
setting_keys = st.text(min_size=1, max_size=20, alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd")))
setting_values = st.text(max_size=20, alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd", "Zs")))
other_lines = st.lists(
    st.text(max_size=30, alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd", "Zs"))).filter(
        lambda line: not line.lstrip().startswith("SET")
    ),
    max_size=8,
)

RELAXED = settings(suppress_health_check=[HealthCheck.function_scoped_fixture], deadline=None, max_examples=50)


@RELAXED
@given(key=setting_keys, value=setting_values, lines=other_lines)
def test_set_is_idempotent(key: str, value: str, lines: list) -> None:
    """Setting the same key twice leaves the file byte-identical to the first write."""
    with tempfile.TemporaryDirectory() as temp_dir:
        config_file = Path(temp_dir) / "WTF" / "Config.wtf"
        config_file.parent.mkdir()
        config_file.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        handler = GameConfigHandler()

        handler.set(config_file, key, value)
        first = config_file.read_bytes()
        handler.set(config_file, key, value)

        assert config_file.read_bytes() == first


@RELAXED
@given(key=setting_keys, value=setting_values, lines=other_lines, duplicates=st.integers(min_value=0, max_value=3))
def test_render_leaves_one_line_per_key(key: str, value: str, lines: list, duplicates: int) -> None:
    """Duplicates collapse onto the first occurrence and other lines keep their order."""
    original = [line + "\n" for line in lines]
    existing = [f'SET {key} "old{i}"\n' for i in range(duplicates)]
    rendered = GameConfigHandler.render(existing + original, key, value)

    matches = [line for line in rendered if line.split(None, 2)[:2] == ["SET", key]]
    assert matches == [format_setting(key, value) + "\n"]
    assert [line for line in rendered if line not in matches] == original


class TestStandardTweaks:
    """The two fixed tweaks on a realistic file."""

    def test_apply_twice(self, tmp_path: Path) -> None:
        config_file = tmp_path / "WTF" / "Config.wtf"
        config_file.parent.mkdir()
        config_file.write_text(
            'SET locale "enUS"\n'
            'SET worldPreloadNonCritical "1"\n'
            "\n"
            'SET gxApi "D3D11"\n'
        )
        handler = GameConfigHandler()

        handler.apply_standard_tweaks(config_file)
        first = config_file.read_bytes()
        handler.apply_standard_tweaks(config_file)

        assert config_file.read_bytes() == first
        assert config_file.read_text() == (
            'SET locale "enUS"\n'
            'SET worldPreloadNonCritical "0"\n'
            "\n"
            'SET gxApi "D3D11"\n'
            'SET rawMouseEnable "1"\n'
        )

    def test_creates_missing_file(self, tmp_path: Path) -> None:
        handler = GameConfigHandler()
        config_file = handler.find_config(tmp_path)
        handler.apply_standard_tweaks(config_file)
        assert config_file == tmp_path / "WTF" / "Config.wtf"
        assert handler.read_all(config_file) == {"worldPreloadNonCritical": "0", "rawMouseEnable": "1"}

    def test_crlf_files_stay_crlf(self, tmp_path: Path) -> None:
        config_file = tmp_path / "Config.wtf"
        config_file.write_bytes(b'SET locale "enUS"\r\n')
        GameConfigHandler().set(config_file, "rawMouseEnable", "1")
        assert config_file.read_bytes() == b'SET locale "enUS"\r\nSET rawMouseEnable "1"\r\n'

    def test_missing_final_newline(self, tmp_path: Path) -> None:
        config_file = tmp_path / "Config.wtf"
        config_file.write_text('SET locale "enUS"')
        GameConfigHandler().set(config_file, "rawMouseEnable", "1")
        assert config_file.read_text() == 'SET locale "enUS"\nSET rawMouseEnable "1"\n'


class TestLookup:
    def test_find_config_prefers_existing_flavour(self, tmp_path: Path) -> None:
        retail = tmp_path / "_retail_" / "WTF" / "Config.wtf"
        retail.parent.mkdir(parents=True)
        retail.write_text("")
        assert GameConfigHandler.find_config(tmp_path) == retail

    def test_get_value(self, tmp_path: Path) -> None:
        config_file = tmp_path / "Config.wtf"
        config_file.write_text('SET gxApi "D3D11"\nSET gxApiExtra "x"\n')
        assert GameConfigHandler.get(config_file, "gxApi") == "D3D11"
        assert GameConfigHandler.get(config_file, "missing") is None

    def test_find_game_path(self, tmp_path: Path) -> None:
        assert GameConfigHandler.find_game_path(tmp_path) is None
        game = tmp_path / "drive_c" / "Program Files (x86)" / "World of Warcraft"
        game.mkdir(parents=True)
        assert GameConfigHandler.find_game_path(tmp_path) == game


class TestBackups:
    """Config.wtf and keybinding backups through the Config Store."""

    def test_config_backup_and_restore(self, tmp_path: Path) -> None:
        handler = GameConfigHandler(ConfigStore(tmp_path / "cfg"))
        config_file = tmp_path / "game" / "WTF" / "Config.wtf"
        config_file.parent.mkdir(parents=True)
        config_file.write_text('SET worldPreloadNonCritical "1"\n')

        result = handler.backup(config_file)
        handler.apply_standard_tweaks(config_file)
        handler.restore(config_file, result.backup_id)

        assert config_file.read_text() == 'SET worldPreloadNonCritical "1"\n'
        assert handler.list_backups() == [result.backup_id]

    def test_keybinds_backup_and_restore(self, tmp_path: Path) -> None:
        handler = GameConfigHandler(ConfigStore(tmp_path / "cfg"))
        game = tmp_path / "game"
        binding = game / "_retail_" / "WTF" / "Account" / "ACCOUNT1" / "bindings-cache.wtf"
        binding.parent.mkdir(parents=True)
        binding.write_text("bind W MOVEFORWARD\n")

        result = handler.backup_keybinds(game)
        binding.unlink()
        restored = handler.restore_keybinds(game, result.backup_id)

        assert restored == [binding]
        assert binding.read_text() == "bind W MOVEFORWARD\n"
        assert handler.list_keybind_backups() == [result.backup_id]

    def test_no_keybinds_found(self, tmp_path: Path) -> None:
        handler = GameConfigHandler(ConfigStore(tmp_path / "cfg"))
        with pytest.raises(IntegrityError):
            handler.backup_keybinds(tmp_path / "game")

    def test_cleanup_counts_both_kinds(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "cfg")
        for kind in ("config", "keybinds"):
            (store.backups_dir / kind / "2001-01-01T00:00:00Z").mkdir(parents=True)
        assert GameConfigHandler(store).cleanup_backups() == 2
