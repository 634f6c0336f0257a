from pathlib import Path

from typer.testing import CliRunner

from buildwright.cli import _dry_run_config, app
from buildwright.config import Config
from buildwright.project import Module, ModuleStatus, Project, ProjectMode

runner = CliRunner()
EXAMPLE = Path(__file__).parent.parent / "product.example.yaml"


def test_plan_prints_modules(tmp_path):
    result = runner.invoke(app, ["plan", str(EXAMPLE), "--config", str(tmp_path / "none.yaml")])
    assert result.exit_code == 0, result.output
    assert "contracts" in result.output
    assert "integration" in result.output


def test_plan_rejects_bad_spec(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("name: Broken\nfeatures: []\n")
    result = runner.invoke(app, ["plan", str(bad)])
    assert result.exit_code == 1
    assert "no features" in result.output


def test_promote(tmp_path):
    Project(name="Demo", modules=[Module(id="a", name="A", status=ModuleStatus.COMPLETE)]).save(tmp_path)
    result = runner.invoke(app, ["promote", str(tmp_path), "--url", "https://test.example.com"])
    assert result.exit_code == 0, result.output
    loaded = Project.load(tmp_path)
    assert loaded.mode is ProjectMode.TEST
    assert loaded.deploy_urls["test"] == "https://test.example.com"


def test_promote_blocked_and_missing(tmp_path):
    Project(name="Demo", modules=[Module(id="a", name="A", status=ModuleStatus.NEEDS_WORK)]).save(tmp_path)
    assert runner.invoke(app, ["promote", str(tmp_path)]).exit_code == 1
    assert Project.load(tmp_path).mode is ProjectMode.DEV
    assert runner.invoke(app, ["promote", str(tmp_path / "nothing")]).exit_code == 1


def test_dry_run_config_uses_static_server():
    config = Config()
    _dry_run_config(config)
    assert "http.server {port}" in config.preview.command
    assert config.screenshots.enabled is False
    assert config.install.enabled is False
