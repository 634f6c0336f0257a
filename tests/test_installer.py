import asyncio
import shlex
import sys

from buildwright.config import InstallConfig
from buildwright.tools import classifier
from buildwright.tools.classifier import ErrorCategory
from buildwright.tools.installer import STAMP_FILE, DependencyInstaller

PYTHON = shlex.quote(sys.executable)

# Stands in for `npm install`: creates node_modules and counts its runs
FAKE_NPM = (
    f"{PYTHON} -c \"import pathlib; p = pathlib.Path('node_modules'); p.mkdir(exist_ok=True); "
    "r = p / 'runs'; r.write_text(str(int(r.read_text()) + 1 if r.exists() else 1))\""
)


def _runs(root) -> int:
    return int((root / "node_modules" / "runs").read_text())


def test_nothing_to_install_without_package_json(tmp_path):
    installer = DependencyInstaller(tmp_path, InstallConfig(command=FAKE_NPM))
    result = asyncio.run(installer.ensure())
    assert result.ok
    assert not result.ran
    assert not (tmp_path / "node_modules").exists()


def test_installs_once_then_again_when_package_json_changes(tmp_path):
    (tmp_path / "package.json").write_text('{"dependencies": {"react": "^18.2.0"}}')
    installer = DependencyInstaller(tmp_path, InstallConfig(command=FAKE_NPM))

    first = asyncio.run(installer.ensure())
    assert first.ok and first.ran
    assert _runs(tmp_path) == 1
    assert (tmp_path / STAMP_FILE).exists()

    again = asyncio.run(installer.ensure())
    assert not again.ran
    assert _runs(tmp_path) == 1

    (tmp_path / "package.json").write_text('{"dependencies": {"react": "^18.2.0", "zustand": "^4.5.0"}}')
    assert installer.needed()
    asyncio.run(installer.ensure())
    assert _runs(tmp_path) == 2


def test_failed_install_is_reported_and_retried_next_time(tmp_path):
    (tmp_path / "package.json").write_text('{"dependencies": {"reactt-dom": "*"}}')
    command = (
        f"{PYTHON} -c \"import sys; "
        "print('npm ERR! 404 Not Found - GET https://registry.npmjs.org/reactt-dom'); "
        "print(\\\"npm ERR! 404  'reactt-dom@*' is not in this registry.\\\"); sys.exit(1)\""
    )
    installer = DependencyInstaller(tmp_path, InstallConfig(command=command))
    result = asyncio.run(installer.ensure())

    assert not result.ok
    assert "npm ERR! 404" in result.output
    assert not (tmp_path / STAMP_FILE).exists()
    [record] = classifier.install_failure(result.output)
    assert record.category is ErrorCategory.DEPENDENCY
    assert record.kind == "module_not_found"


def test_missing_npm_binary_is_a_dependency_error(tmp_path):
    (tmp_path / "package.json").write_text("{}")
    installer = DependencyInstaller(tmp_path, InstallConfig(command="definitely-not-npm-xyz install"))
    result = asyncio.run(installer.ensure())

    assert not result.ok
    [record] = classifier.install_failure(result.output)
    assert record.category is ErrorCategory.DEPENDENCY
    assert record.kind == "command_not_found"
    assert "definitely-not-npm-xyz" in record.message


def test_slow_install_times_out(tmp_path):
    (tmp_path / "package.json").write_text("{}")
    command = f"{PYTHON} -c \"import time; time.sleep(30)\""
    installer = DependencyInstaller(tmp_path, InstallConfig(command=command, timeout=1.0))
    result = asyncio.run(installer.ensure())
    assert not result.ok
    assert "timed out" in result.output


def test_disabled_installer_never_runs(tmp_path):
    (tmp_path / "package.json").write_text("{}")
    installer = DependencyInstaller(tmp_path, InstallConfig(enabled=False, command=FAKE_NPM))
    assert not installer.needed()
    assert not asyncio.run(installer.ensure()).ran
