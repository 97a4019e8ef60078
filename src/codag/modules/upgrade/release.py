"""
Self-upgrade: replace the running codag executable with the latest release.

Steps:
1. Fetch the latest GitHub release (tag + assets)
2. Pick the asset for this OS/arch (codag_<os>_<arch>.tar.gz, .zip on Windows)
3. Download and extract the codag binary into a temp dir
4. Stage it next to the running executable, copy permissions, rename over it

If anything fails between staging and rename, the staged file is removed and
the original executable is left as it was.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import shutil
import stat
import sys
import tarfile
import tempfile
import urllib.error
import urllib.request
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from ..core.errors import UpgradeError

logger = logging.getLogger(__name__)

REPO_OWNER = "codag-megalith"
REPO_NAME = "codag-cli"
RELEASE_URL = f"https://api.github.com/repos/{REPO_OWNER}/{REPO_NAME}/releases/latest"

BINARY_NAMES = ("codag", "codag.exe")

_OS_NAMES = {"linux": "linux", "darwin": "darwin", "windows": "windows"}
_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
}


@dataclass
class Asset:
    name: str
    browser_download_url: str


@dataclass
class Release:
    tag_name: str
    assets: list[Asset] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Release":
        return cls(
            tag_name=data.get("tag_name") or "",
            assets=[
                Asset(name=a.get("name") or "", browser_download_url=a.get("browser_download_url") or "")
                for a in data.get("assets") or []
            ],
        )

    @property
    def version(self) -> str:
        return strip_version_prefix(self.tag_name)


def strip_version_prefix(version: str) -> str:
    return version[1:] if version.startswith("v") else version


def is_newer(a: str, b: str) -> bool:
    """True if version a is newer than version b ("1.2" == "1.2.0")."""

    def parts(v: str) -> list[int]:
        out = []
        for piece in strip_version_prefix(v).split("."):
            digits = ""
            for ch in piece:
                if not ch.isdigit():
                    break
                digits += ch
            out.append(int(digits) if digits else 0)
        return out

    a_parts, b_parts = parts(a), parts(b)
    width = max(len(a_parts), len(b_parts))
    a_parts += [0] * (width - len(a_parts))
    b_parts += [0] * (width - len(b_parts))
    return a_parts > b_parts


def fetch_latest_release(url: str = RELEASE_URL, timeout: float = 30.0) -> Release:
    req = urllib.request.Request(
        url, headers={"Accept": "application/vnd.github+json", "User-Agent": "codag-cli"}
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            data = json.loads(response.read().decode())
    except urllib.error.HTTPError as e:
        raise UpgradeError(f"GitHub API returned {e.code}") from e
    except (urllib.error.URLError, OSError, ValueError) as e:
        raise UpgradeError(f"failed to check for updates: {e}") from e
    return Release.from_dict(data)


def platform_names(system: str | None = None, machine: str | None = None) -> tuple[str, str]:
    """(os, arch) using the names release assets are published under."""
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    return _OS_NAMES.get(system, system), _ARCH_NAMES.get(machine, machine)


def expected_asset_name(system: str | None = None, machine: str | None = None) -> str:
    os_name, arch = platform_names(system, machine)
    ext = ".zip" if os_name == "windows" else ".tar.gz"
    return f"codag_{os_name}_{arch}{ext}"


def select_asset(release: Release, asset_name: str) -> Asset:
    for asset in release.assets:
        if asset.name == asset_name:
            return asset
    raise UpgradeError(f"no release asset found for this platform ({asset_name})")


def download_file(url: str, dest: Path, timeout: float = 300.0) -> None:
    req = urllib.request.Request(url, headers={"User-Agent": "codag-cli"})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response, open(dest, "wb") as out:
            shutil.copyfileobj(response, out)
    except urllib.error.HTTPError as e:
        raise UpgradeError(f"download returned {e.code}") from e
    except (urllib.error.URLError, OSError) as e:
        raise UpgradeError(f"download failed: {e}") from e


def _write_member(source, dest_dir: Path, name: str) -> Path:
    out_path = dest_dir / name
    with open(out_path, "wb") as out:
        shutil.copyfileobj(source, out)
    os.chmod(out_path, 0o755)
    return out_path


def extract_binary(archive: Path, dest_dir: Path) -> Path:
    """Extract the codag binary from a .tar.gz or .zip, whatever its path inside."""
    archive = Path(archive)
    dest_dir = Path(dest_dir)
    try:
        if archive.name.endswith(".zip"):
            with zipfile.ZipFile(archive) as zf:
                for info in zf.infolist():
                    name = Path(info.filename).name
                    if name in BINARY_NAMES and not info.is_dir():
                        with zf.open(info) as src:
                            return _write_member(src, dest_dir, name)
        else:
            with tarfile.open(archive, "r:gz") as tf:
                for member in tf:
                    name = Path(member.name).name
                    if name in BINARY_NAMES and member.isfile():
                        src = tf.extractfile(member)
                        if src is None:
                            continue
                        with src:
                            return _write_member(src, dest_dir, name)
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        raise UpgradeError(f"extraction failed: {e}") from e
    raise UpgradeError("binary not found in archive")


def current_executable() -> Path:
    """Real path of the running codag executable.

    A non-frozen install is only replaced through the `codag` launcher on PATH,
    never through a Python source file such as `python -m codag.cli`.
    """
    if getattr(sys, "frozen", False):
        return Path(os.path.realpath(sys.executable))
    found = shutil.which("codag")
    if not found:
        raise UpgradeError("cannot locate the codag executable on PATH")
    path = Path(os.path.realpath(found))
    if path.suffix == ".py":
        raise UpgradeError(f"refusing to replace Python source file {path}")
    return path


def is_frozen() -> bool:
    return bool(getattr(sys, "frozen", False))


def replace_binary(new_binary: Path, target: Path) -> None:
    """Atomically replace target with new_binary, keeping target's permissions."""
    target = Path(target)
    try:
        mode = stat.S_IMODE(target.stat().st_mode)
    except OSError as e:
        raise UpgradeError(f"cannot locate current binary: {e}") from e
    # Staged next to the target so the rename stays on one filesystem
    staged = target.with_name(target.name + ".new")
    try:
        shutil.copyfile(new_binary, staged)
        os.chmod(staged, mode)
        os.replace(staged, target)
    except OSError as e:
        staged.unlink(missing_ok=True)
        raise UpgradeError(f"upgrade failed: {e}") from e


@dataclass
class UpgradeResult:
    current: str
    latest: str
    upgraded: bool
    path: Path | None = None


def run_upgrade(
    current_version: str,
    *,
    force: bool = False,
    target: Path | None = None,
    fetch: Callable[[], Release] = fetch_latest_release,
    download: Callable[[str, Path], None] = download_file,
    asset_name: str | None = None,
    progress: Callable[[str], None] | None = None,
) -> UpgradeResult:
    """Upgrade target (default: the running executable) to the latest release."""
    notify = progress or (lambda message: None)
    release = fetch()
    latest = release.version
    current = strip_version_prefix(current_version)

    if latest == current and not force:
        return UpgradeResult(current=current, latest=latest, upgraded=False)

    asset = select_asset(release, asset_name or expected_asset_name())
    try:
        exec_path = Path(os.path.realpath(target)) if target else current_executable()
    except OSError as e:
        raise UpgradeError(f"cannot locate current binary: {e}") from e

    with tempfile.TemporaryDirectory(prefix="codag-upgrade-") as tmp:
        tmp_dir = Path(tmp)
        archive = tmp_dir / asset.name
        notify(f"Downloading v{latest}…")
        download(asset.browser_download_url, archive)

        notify("Extracting…")
        binary = extract_binary(archive, tmp_dir)

        notify("Installing…")
        replace_binary(binary, exec_path)

    return UpgradeResult(current=current, latest=latest, upgraded=True, path=exec_path)
