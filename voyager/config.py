"""
Project configuration for the Voyager verifier

Loads options from:
1. .voyager.toml (current directory, then each parent up to the root)
2. Default values

CLI arguments take priority over both; the merge happens in voyager.cli.

Example:

    [voyager]
    network = "mainnet"
    license = "MIT"
    watch = true
    lock-file = true

    [workspace]
    default-package = "my_contract"

    [[contracts]]
    class-hash = "0x044dc2b3..."
    contract-name = "Token"
"""

import logging
import tomllib
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from voyager.utils import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".voyager.toml"

NETWORK_URLS = {
    "mainnet": "https://api.voyager.online/beta",
    "sepolia": "https://sepolia-api.voyager.online/beta",
    "dev": "https://dev-api.voyager.online/beta",
}


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class _Section(BaseModel):
    model_config = ConfigDict(alias_generator=_kebab, populate_by_name=True, extra="forbid")


class VoyagerSection(_Section):
    network: Optional[str] = None
    url: Optional[str] = None
    license: Optional[str] = None
    watch: Optional[bool] = None
    test_files: Optional[bool] = None
    lock_file: Optional[bool] = None
    verbose: Optional[bool] = None
    project_type: Optional[str] = None
    format: Optional[str] = None


class WorkspaceSection(_Section):
    default_package: Optional[str] = None


class ContractEntry(_Section):
    """One ``[[contracts]]`` table - a batch item."""

    class_hash: str
    contract_name: str
    package: Optional[str] = None


class FileConfig(_Section):
    """Parsed contents of ``.voyager.toml``."""

    voyager: VoyagerSection = Field(default_factory=VoyagerSection)
    workspace: WorkspaceSection = Field(default_factory=WorkspaceSection)
    contracts: list[ContractEntry] = Field(default_factory=list)
    path: Optional[Path] = Field(default=None, exclude=True)

    @classmethod
    def from_file(cls, path: str | Path) -> "FileConfig":
        """Load configuration from a TOML file"""
        path = Path(path)
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read config file {path}: {e}",
                suggestions=["Check file permissions"],
            ) from e
        except UnicodeDecodeError as e:
            raise ConfigurationError(
                f"Config file {path} is not valid UTF-8: {e}",
                code="E031",
                suggestions=[f"Save {CONFIG_FILE_NAME} with UTF-8 encoding"],
            ) from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(
                f"Failed to parse config file {path}: {e}",
                code="E031",
                suggestions=[
                    f"Check that {CONFIG_FILE_NAME} is valid TOML",
                    "Verify all field names are spelled correctly",
                ],
            ) from e

        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid config file {path}:\n{e}",
                code="E031",
            ) from e
        config.path = path
        return config

    def network_url(self) -> Optional[str]:
        """Endpoint configured in the file, if any"""
        return resolve_api_url(self.voyager.network, self.voyager.url)


def find_config_file(start: str | Path | None = None) -> Optional[Path]:
    """Walk up from start (default cwd) looking for .voyager.toml"""
    current = Path(start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def load_config(start: str | Path | None = None) -> Optional[FileConfig]:
    """Find and load the nearest .voyager.toml, or None if there is none"""
    path = find_config_file(start)
    if path is None:
        logger.debug("No %s found", CONFIG_FILE_NAME)
        return None
    logger.info("Using config file %s", path)
    return FileConfig.from_file(path)


def resolve_api_url(network: Optional[str], url: Optional[str]) -> Optional[str]:
    """Map a network name or custom URL to the API base URL.

    Network and URL are mutually exclusive.
    """
    if network and url:
        raise ConfigurationError(
            "Both a network and a custom URL were given",
            suggestions=["Use either --network or --url, not both"],
        )
    if url:
        return url
    if network:
        try:
            return NETWORK_URLS[network.lower()]
        except KeyError:
            raise ConfigurationError(
                f"Unknown network '{network}'",
                suggestions=[f"Valid networks: {', '.join(NETWORK_URLS)}"],
            ) from None
    return None


def network_name(url: str) -> str:
    """Short network label for a base URL (used in history records)"""
    for name, known in NETWORK_URLS.items():
        if url.rstrip("/") == known:
            return name
    if "sepolia" in url:
        return "sepolia"
    if "dev" in url:
        return "dev"
    if "mainnet" in url or "api.voyager.online" in url:
        return "mainnet"
    return "custom"
