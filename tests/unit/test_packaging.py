from __future__ import annotations

from pathlib import Path
import tomllib


ROOT = Path(__file__).resolve().parents[2]


def _pyproject() -> dict:
    return tomllib.loads((ROOT / "pyproject.toml").read_text(encoding="utf-8"))


def test_api_extra_includes_uvicorn_standard() -> None:
    api_dependencies = _pyproject().get("project", {}).get("optional-dependencies", {}).get("api", [])
    assert any(str(item).startswith("uvicorn[standard]") for item in api_dependencies)
    assert any(str(item).startswith("fastapi") for item in api_dependencies)


def test_console_script_points_at_cli_main() -> None:
    project = _pyproject()["project"]
    assert project["name"] == "sporeops"
    assert project["scripts"]["sporeops"] == "sporeops.cli:main"
    assert any(str(item).startswith("pyyaml") for item in project["dependencies"])


def test_default_config_ships_with_package() -> None:
    package_data = _pyproject()["tool"]["setuptools"]["package-data"]["sporeops"]
    assert "config/defaults.yml" in package_data
    assert (ROOT / "sporeops" / "config" / "defaults.yml").exists()
