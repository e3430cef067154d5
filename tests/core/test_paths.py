"""Tests for portable path contraction and expansion."""

from pathlib import Path

import pytest

from savesync.core.errors import ValidationError
from savesync.core.paths import (
    GAMEPATH_MARKER,
    USERPROFILE_MARKER,
    contract_path,
    expand_path,
    file_name,
    is_portable,
    resolve_relative_path,
)

ROOT = "/games/Hollow"
PROFILE = "/home/alice"


class TestContractPath:
    """Tests for contract_path."""

    def test_inside_install_root(self) -> None:
        """Files under the install root use %GAMEPATH%."""
        assert contract_path("/games/Hollow/Saves/user1.dat", ROOT, PROFILE) == "%GAMEPATH%/Saves/user1.dat"

    def test_inside_user_profile(self) -> None:
        """Files under the user profile use %USERPROFILE%."""
        result = contract_path("/home/alice/.config/hollow/opt.ini", ROOT, PROFILE)
        assert result == "%USERPROFILE%/.config/hollow/opt.ini"

    def test_install_root_checked_first(self) -> None:
        """An install root inside the profile still yields %GAMEPATH%."""
        root = "/home/alice/games/Hollow"
        assert contract_path("/home/alice/games/Hollow/save.dat", root, PROFILE) == "%GAMEPATH%/save.dat"

    def test_case_insensitive_prefix(self) -> None:
        """Root matching ignores case."""
        assert contract_path("C:\\Games\\HOLLOW\\save.dat", "c:/games/hollow", PROFILE) == "%GAMEPATH%/save.dat"

    def test_backslashes_normalized(self) -> None:
        """Windows separators become forward slashes."""
        result = contract_path("C:\\Games\\Hollow\\Saves\\a.dat", "C:\\Games\\Hollow", PROFILE)
        assert result == "%GAMEPATH%/Saves/a.dat"

    def test_trailing_slash_on_root(self) -> None:
        """A root given with a trailing slash behaves the same."""
        assert contract_path("/games/Hollow/save.dat", "/games/Hollow/", PROFILE) == "%GAMEPATH%/save.dat"

    def test_sibling_directory_not_matched(self) -> None:
        """A directory sharing the root's prefix is not inside it."""
        assert contract_path("/games/HollowKnight/save.dat", ROOT, PROFILE) == "save.dat"

    def test_outside_roots_falls_back_to_file_name(self) -> None:
        """Paths outside every root keep only the file name."""
        assert contract_path("/mnt/other/deep/save.dat", ROOT, PROFILE) == "save.dat"

    def test_other_drive_falls_back_to_file_name(self) -> None:
        """A different drive letter keeps only the file name."""
        assert contract_path("D:/Saves/slot1.sav", "C:/Games/Hollow", "C:/Users/alice") == "slot1.sav"

    def test_fallback_collides_for_same_name(self) -> None:
        """Two files with the same name outside the roots collide."""
        first = contract_path("/mnt/a/save.dat", ROOT, PROFILE)
        second = contract_path("/mnt/b/save.dat", ROOT, PROFILE)
        assert first == second

    def test_portable_input_unchanged(self) -> None:
        """Already portable paths are returned as-is."""
        assert contract_path("%GAMEPATH%/Saves/a.dat", ROOT, PROFILE) == "%GAMEPATH%/Saves/a.dat"

    def test_accepts_path_objects(self) -> None:
        """Path objects are accepted for every argument."""
        assert contract_path(Path(ROOT) / "a.dat", Path(ROOT), Path(PROFILE)) == "%GAMEPATH%/a.dat"

    def test_empty_path_rejected(self) -> None:
        """An empty path cannot be contracted."""
        with pytest.raises(ValidationError):
            contract_path("", ROOT, PROFILE)


class TestExpandPath:
    """Tests for expand_path."""

    def test_gamepath(self) -> None:
        """%GAMEPATH% expands under the install root."""
        assert expand_path("%GAMEPATH%/Saves/a.dat", ROOT, PROFILE) == "/games/Hollow/Saves/a.dat"

    def test_userprofile(self) -> None:
        """%USERPROFILE% expands under the user profile."""
        assert expand_path("%USERPROFILE%/.config/opt.ini", ROOT, PROFILE) == "/home/alice/.config/opt.ini"

    def test_marker_case_insensitive(self) -> None:
        """Markers are recognized regardless of case."""
        assert expand_path("%gamepath%/a.dat", ROOT, PROFILE) == "/games/Hollow/a.dat"

    def test_bare_name_expands_under_install_root(self) -> None:
        """Fallback output resolves under the install root."""
        assert expand_path("save.dat", ROOT, PROFILE) == "/games/Hollow/save.dat"

    def test_windows_root(self) -> None:
        """Windows roots come back with forward slashes."""
        assert expand_path("%GAMEPATH%/Saves/a.dat", "C:\\Games\\Hollow", PROFILE) == "C:/Games/Hollow/Saves/a.dat"

    @pytest.mark.parametrize(
        "portable",
        [
            "",
            "%STEAMPATH%/a.dat",
            "/etc/passwd",
            "C:/Windows/a.dat",
            "%GAMEPATH%/C:/a.dat",
            "%GAMEPATH%/../outside.dat",
            "Saves/../../a.dat",
        ],
    )
    def test_malformed_rejected(self, portable: str) -> None:
        """Malformed portable paths raise ValidationError."""
        with pytest.raises(ValidationError):
            expand_path(portable, ROOT, PROFILE)

    def test_missing_root_rejected(self) -> None:
        """A %GAMEPATH% path needs an install root."""
        with pytest.raises(ValidationError):
            expand_path("%GAMEPATH%/a.dat", None, PROFILE)

    def test_validation_error_is_value_error(self) -> None:
        """ValidationError can be caught as ValueError."""
        with pytest.raises(ValueError):
            expand_path("%NOPE%/a.dat", ROOT, PROFILE)


class TestRoundTrip:
    """Contracting then expanding returns the original path."""

    @pytest.mark.parametrize(
        "absolute",
        [
            "/games/Hollow/save.dat",
            "/games/Hollow/Saves/slot 1/user1.dat",
            "/games/Hollow/a/b/c/d.bin",
        ],
    )
    def test_under_install_root(self, absolute: str) -> None:
        """Paths under the install root survive a round trip."""
        assert expand_path(contract_path(absolute, ROOT, PROFILE), ROOT, PROFILE) == absolute

    def test_under_user_profile(self) -> None:
        """Paths under the user profile survive a round trip."""
        absolute = "/home/alice/Documents/Hollow/save.dat"
        assert expand_path(contract_path(absolute, ROOT, PROFILE), ROOT, PROFILE) == absolute

    def test_relocated_install(self) -> None:
        """A record written on one machine resolves on another."""
        portable = contract_path("/games/Hollow/Saves/a.dat", ROOT, PROFILE)
        assert expand_path(portable, "D:/Steam/Hollow", "C:/Users/bob") == "D:/Steam/Hollow/Saves/a.dat"


class TestResolveRelativePath:
    """Tests for resolve_relative_path."""

    def test_strips_gamepath(self) -> None:
        assert resolve_relative_path("%GAMEPATH%/Saves/save.dat") == "Saves/save.dat"

    def test_strips_userprofile(self) -> None:
        assert resolve_relative_path("%USERPROFILE%\\AppData\\x.sav") == "AppData/x.sav"

    def test_absolute_flattened(self) -> None:
        """Absolute paths keep only the file name."""
        assert resolve_relative_path("C:\\Games\\Other\\save.dat") == "save.dat"
        assert resolve_relative_path("/opt/game/save.dat") == "save.dat"

    def test_relative_kept(self) -> None:
        assert resolve_relative_path("Saves/save.dat") == "Saves/save.dat"


class TestHelpers:
    """Tests for small path helpers."""

    def test_is_portable(self) -> None:
        assert is_portable(f"{GAMEPATH_MARKER}/a")
        assert is_portable(f"{USERPROFILE_MARKER}/a")
        assert not is_portable("/games/a")
        assert not is_portable("%OTHER%/a")

    def test_file_name(self) -> None:
        assert file_name("C:\\a\\b.dat") == "b.dat"
        assert file_name("%GAMEPATH%/x/y.sav") == "y.sav"
