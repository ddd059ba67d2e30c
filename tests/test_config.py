"""Tests for the configuration module."""

from pathlib import Path

import pytest

from wirecalc._cli.config import (
    ConfigError,
    WirecalcConfig,
    find_pyproject_toml,
    get_config,
    load_config,
)


class TestFindPyprojectToml:
    """Tests for find_pyproject_toml function."""

    def test_finds_in_current_directory(self, tmp_path: Path) -> None:
        """Should find pyproject.toml in current directory."""
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[project]\nname = 'test'\n")

        result = find_pyproject_toml(tmp_path)

        assert result == pyproject

    def test_finds_in_parent_directory(self, tmp_path: Path) -> None:
        """Should find pyproject.toml in parent directory."""
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[project]\nname = 'test'\n")

        subdir = tmp_path / "src" / "pkg"
        subdir.mkdir(parents=True)

        result = find_pyproject_toml(subdir)

        assert result == pyproject

    def test_returns_none_when_not_found(self, tmp_path: Path) -> None:
        """Should return None when no pyproject.toml is found."""
        result = find_pyproject_toml(tmp_path)

        assert result is None


class TestLoadConfig:
    """Tests for loading the [tool.wirecalc] table."""

    def test_paths_resolved_from_project_root(self, tmp_path: Path) -> None:
        """Relative paths should be resolved against the pyproject directory."""
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text(
            """
[tool.wirecalc]
document = "graphs/main.json"
output = "results.toml"
""",
        )

        config = load_config(pyproject)

        assert config.document == tmp_path / "graphs" / "main.json"
        assert config.output == tmp_path / "results.toml"
        assert config.project_root == tmp_path

    def test_absolute_path_kept(self, tmp_path: Path) -> None:
        pyproject = tmp_path / "pyproject.toml"
        target = tmp_path / "elsewhere" / "graph.json"
        pyproject.write_text(f'[tool.wirecalc]\ndocument = "{target.as_posix()}"\n')

        config = load_config(pyproject)

        assert config.document == target

    def test_missing_section(self, tmp_path: Path) -> None:
        """Should return defaults when [tool.wirecalc] is absent."""
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[project]\nname = 'test'\n")

        config = load_config(pyproject)

        assert config == WirecalcConfig(project_root=tmp_path)

    def test_invalid_path_type(self, tmp_path: Path) -> None:
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[tool.wirecalc]\ndocument = 42\n")

        with pytest.raises(ConfigError, match="expected string path"):
            load_config(pyproject)

    def test_invalid_output_type(self, tmp_path: Path) -> None:
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text('[tool.wirecalc]\noutput = ["a.toml"]\n')

        with pytest.raises(ConfigError, match="output"):
            load_config(pyproject)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[tool.wirecalc\n")

        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(pyproject)


class TestGetConfig:
    def test_reads_from_working_directory(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "pyproject.toml").write_text('[tool.wirecalc]\noutput = "out.toml"\n')
        monkeypatch.chdir(tmp_path)

        assert get_config().output == tmp_path.resolve() / "out.toml"
