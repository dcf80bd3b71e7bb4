"""Tests for module discovery from settings files."""

from pathlib import Path

from depprune.discovery import discover_modules, parse_included_modules


class TestParseIncludedModules:
    """Tests for reading include lines."""

    def test_kotlin_dsl(self) -> None:
        text = 'rootProject.name = "shop"\ninclude(":app")\ninclude(":library:core")\n'
        assert parse_included_modules(text) == ["app", "library:core"]

    def test_groovy_multiple_per_line(self) -> None:
        assert parse_included_modules("include ':app', ':data', ':tracker'\n") == [
            "app",
            "data",
            "tracker",
        ]

    def test_include_build_is_ignored(self) -> None:
        text = 'includeBuild("build-logic")\ninclude(":app")\n'
        assert parse_included_modules(text) == ["app"]

    def test_comments_and_other_lines_are_ignored(self) -> None:
        text = '// include(":old")\npluginManagement {\n}\n  include(":app")\n'
        assert parse_included_modules(text) == ["app"]

    def test_duplicates_are_dropped(self) -> None:
        text = 'include(":app")\ninclude(":app", ":lib")\n'
        assert parse_included_modules(text) == ["app", "lib"]


class TestDiscoverModules:
    """Tests for locating the settings file."""

    def test_settings_gradle_kts(self, tmp_path: Path) -> None:
        (tmp_path / "settings.gradle.kts").write_text('include(":app")\n')
        assert discover_modules(tmp_path) == ["app"]

    def test_settings_gradle(self, tmp_path: Path) -> None:
        (tmp_path / "settings.gradle").write_text("include ':app'\n")
        assert discover_modules(tmp_path) == ["app"]

    def test_missing_settings(self, tmp_path: Path) -> None:
        assert discover_modules(tmp_path) is None
