"""
Upgrade: replace the running codag executable with the latest GitHub release,
and check for new releases in the background.
"""

from .release import (
    Asset,
    Release,
    expected_asset_name,
    extract_binary,
    is_newer,
    replace_binary,
    run_upgrade,
    select_asset,
)
from .update_check import UpdateChecker

__all__ = [
    "Asset",
    "Release",
    "UpdateChecker",
    "expected_asset_name",
    "extract_binary",
    "is_newer",
    "replace_binary",
    "run_upgrade",
    "select_asset",
]
