"""Version of the installed dynproto-sdk.

__version__ is the release string and may carry pre-release or build suffixes;
version_string and version_info only keep the <MAJOR>.<MINOR>.<PATCH> core.
"""

from __future__ import annotations

import re

__version__ = '0.3.0'

_CORE_VERSION = re.compile(r'(\d+)\.(\d+)\.(\d+)')


def parse_version(version: str) -> tuple[int, int, int]:
    """Extract (major, minor, patch) from a release string such as '1.2.3rc1' or '1.2.3+build.5'.

    Raises:
      RuntimeError: the string has no <MAJOR>.<MINOR>.<PATCH> core
    """
    match = _CORE_VERSION.search(version)
    if match is None:
        msg = f'Release {version!r} has no <MAJOR>.<MINOR>.<PATCH> core'
        raise RuntimeError(msg)
    major, minor, patch = (int(part) for part in match.groups())
    return major, minor, patch


version_info = parse_version(__version__)
"""(major, minor, patch) of this release."""

version_string = '.'.join(str(part) for part in version_info)
"""version_info joined with dots, without any pre-release or build suffix."""
