"""Scarb / Cairo toolchain version detection."""

from __future__ import annotations

import logging
import re
import subprocess
from typing import Optional

from voyager.project.models import ToolchainVersions
from voyager.settings import get_settings
from voyager.utils import ToolchainError

logger = logging.getLogger(__name__)

_SCARB_RE = re.compile(r"^scarb\s+v?(\S+)", re.MULTILINE)
_CAIRO_RE = re.compile(r"^cairo:\s+v?(\S+)", re.MULTILINE)


def parse_scarb_version_output(output: str) -> ToolchainVersions:
    """Parse the output of ``scarb --version``.

    Expected shape::

        scarb 2.8.4 (e4d6fbb1f 2024-10-14)
        cairo: 2.8.4 (https://crates.io/crates/cairo-lang-compiler/2.8.4)
        sierra: 1.6.0
    """
    scarb = _SCARB_RE.search(output)
    cairo = _CAIRO_RE.search(output)
    if not scarb or not cairo:
        raise ToolchainError(
            f"Unrecognised 'scarb --version' output: {output.strip()!r}",
            suggestions=["Set VOYAGER_SCARB_VERSION and VOYAGER_CAIRO_VERSION explicitly"],
        )
    return ToolchainVersions(scarb=scarb.group(1), cairo=cairo.group(1))


def detect_toolchain(
    scarb_version: Optional[str] = None,
    cairo_version: Optional[str] = None,
) -> ToolchainVersions:
    """Determine the local Scarb and Cairo versions.

    Explicit arguments win, then settings overrides, then ``scarb --version``.
    """
    cfg = get_settings()
    scarb_version = scarb_version or cfg.scarb_version
    cairo_version = cairo_version or cfg.cairo_version
    if scarb_version and cairo_version:
        return ToolchainVersions(scarb=scarb_version, cairo=cairo_version)

    try:
        result = subprocess.run(
            ["scarb", "--version"],
            capture_output=True,
            text=True,
            timeout=30,
            check=True,
        )
    except FileNotFoundError:
        raise ToolchainError(
            "scarb executable not found",
            suggestions=[
                "Install Scarb: https://docs.swmansion.com/scarb/download.html",
                "Or set VOYAGER_SCARB_VERSION and VOYAGER_CAIRO_VERSION",
            ],
        ) from None
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        raise ToolchainError(f"'scarb --version' failed: {e}") from e

    detected = parse_scarb_version_output(result.stdout)
    logger.debug("Detected toolchain scarb=%s cairo=%s", detected.scarb, detected.cairo)
    return ToolchainVersions(
        scarb=scarb_version or detected.scarb,
        cairo=cairo_version or detected.cairo,
    )
