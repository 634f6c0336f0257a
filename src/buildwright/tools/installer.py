"""Dependency installer — keeps node_modules in step with package.json."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path

from buildwright.config import InstallConfig
from buildwright.utils import atomic_write_text

log = logging.getLogger(__name__)

STAMP_FILE = Path(".buildwright") / "install.json"


@dataclass
class InstallResult:
    ok: bool
    output: str = ""
    ran: bool = True


class DependencyInstaller:
    """Runs the install command when package.json changed since the last
    successful install, or when node_modules is missing.

    A project without package.json has nothing to install.
    """

    def __init__(self, root: Path, config: InstallConfig | None = None) -> None:
        self.root = root
        self.config = config or InstallConfig()

    def _manifest_hash(self) -> str | None:
        manifest = self.root / "package.json"
        if not manifest.is_file():
            return None
        return hashlib.md5(manifest.read_bytes()).hexdigest()

    def _last_hash(self) -> str | None:
        try:
            return json.loads((self.root / STAMP_FILE).read_text()).get("package_json")
        except (OSError, ValueError):
            return None

    def needed(self) -> bool:
        if not self.config.enabled:
            return False
        current = self._manifest_hash()
        if current is None:
            return False
        if not (self.root / "node_modules").is_dir():
            return True
        return current != self._last_hash()

    async def ensure(self) -> InstallResult:
        """Install if needed. Never raises for a failing install."""
        if not self.needed():
            return InstallResult(ok=True, ran=False)

        digest = self._manifest_hash()
        result = await self._run()
        if result.ok:
            log.info("Dependencies installed")
            try:
                atomic_write_text(self.root / STAMP_FILE, json.dumps({"package_json": digest}))
            except OSError as e:
                # Only costs a reinstall next time
                log.warning("Could not record install stamp: %s", e)
        else:
            log.warning("Dependency install failed")
        return result

    async def _run(self) -> InstallResult:
        argv = shlex.split(self.config.command)
        log.debug("Installing dependencies: %s (cwd=%s)", argv, self.root)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=self.root,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            # Same wording a shell would use, so the classifier sees one shape
            return InstallResult(ok=False, output=f"sh: {argv[0]}: command not found\n{e}")

        try:
            out, _ = await asyncio.wait_for(proc.communicate(), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            out, _ = await proc.communicate()
            text = (out or b"").decode("utf-8", errors="replace")
            return InstallResult(
                ok=False,
                output=f"{text}\nnpm ERR! install timed out after {self.config.timeout:.0f}s",
            )

        text = out.decode("utf-8", errors="replace")
        return InstallResult(ok=proc.returncode == 0, output=text)
