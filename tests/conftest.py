"""Shared test fixtures for the verifier test suite."""

import os
import textwrap
from pathlib import Path

import pytest

# Ensure test environment variables are set before any settings import
os.environ.setdefault("VOYAGER_SCARB_VERSION", "2.8.4")
os.environ.setdefault("VOYAGER_CAIRO_VERSION", "2.8.4")
os.environ.setdefault("VOYAGER_HISTORY_ENABLED", "false")
os.environ.setdefault("COLUMNS", "200")

from voyager.api.models import VerificationJob  # noqa: E402
from voyager.project.models import ToolchainVersions  # noqa: E402
from voyager.project.resolver import ProjectResolver  # noqa: E402

CLASS_HASH = "0x044dc2b3239382230d8b1e943df23b96f52eebcac93efe6e8bde92f9a2f1da18"

CONTRACT_SOURCE = """\
#[starknet::contract]
mod Foo {
    #[storage]
    struct Storage {}
}
"""


def write(root: Path, relative: str, content: str) -> Path:
    """Write a dedented file below root, creating directories."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content))
    return path


@pytest.fixture
def toolchain():
    return ToolchainVersions(scarb="2.8.4", cairo="2.8.4")


@pytest.fixture
def resolver(toolchain):
    return ProjectResolver(toolchain=toolchain)


@pytest.fixture
def simple_project(tmp_path):
    """Single package 'p' with a lib, an implementation file and a test file."""
    root = tmp_path / "p"
    write(root, "Scarb.toml", """\
        [package]
        name = "p"
        version = "0.1.0"
        license = "MIT"

        [dependencies]
        starknet = "2.8.4"

        [dev-dependencies]
        snforge_std = "0.31.0"
        """)
    write(root, "src/lib.cairo", "mod foo_impl;\n#[cfg(test)]\nmod tests;\n")
    write(root, "src/foo_impl.cairo", CONTRACT_SOURCE)
    write(root, "src/tests/foo.cairo", "#[test]\nfn it_works() {}\n")
    return root


@pytest.fixture
def workspace_project(tmp_path):
    """Workspace with members 'token' and 'nft'; token depends on 'utils' by path."""
    root = tmp_path / "ws"
    write(root, "Scarb.toml", """\
        [workspace]
        members = ["packages/*"]

        [workspace.package]
        version = "1.2.0"
        license = "Apache-2.0"

        [workspace.dependencies]
        starknet = "2.8.4"
        """)
    write(root, "packages/token/Scarb.toml", """\
        [package]
        name = "token"
        version.workspace = true

        [dependencies]
        utils = { path = "../../libs/utils" }
        """)
    write(root, "packages/token/src/lib.cairo", """\
        #[starknet::contract]
        pub mod Token {
            #[storage]
            struct Storage {}
        }
        """)
    write(root, "packages/nft/Scarb.toml", """\
        [package]
        name = "nft"
        version = "0.3.0"
        """)
    write(root, "packages/nft/src/lib.cairo", "mod nft;\n")
    write(root, "libs/utils/Scarb.toml", """\
        [package]
        name = "utils"
        version = "0.1.0"
        """)
    write(root, "libs/utils/src/lib.cairo", "pub fn helper() {}\n")
    return root


class FakeClient:
    """In-process stand-in for VoyagerClient.

    ``statuses`` maps job id -> list of status codes returned by successive
    ``get_job`` calls; the last one repeats.
    """

    network = "sepolia"

    def __init__(self, statuses=None, fail_submit=None):
        self.statuses = statuses or {}
        self.fail_submit = fail_submit or {}
        self.submitted = []
        self.polls = {}

    def submit(self, request):
        error = self.fail_submit.get(request.contract_name)
        if error is not None:
            raise error
        self.submitted.append(request)
        return f"job-{len(self.submitted)}"

    def get_job(self, job_id):
        count = self.polls.get(job_id, 0)
        self.polls[job_id] = count + 1
        sequence = self.statuses.get(job_id, [0])
        status = sequence[min(count, len(sequence) - 1)]
        if isinstance(status, BaseException):
            raise status
        return VerificationJob(job_id=job_id, status=status)


@pytest.fixture
def fake_client():
    return FakeClient()
