"""CLI tests through click's CliRunner; HTTP is mocked at the httpx layer."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from tests.conftest import CLASS_HASH, write
from voyager.cli import main
from voyager.history.models import JobRecord
from voyager.history.store import SQLHistoryStore
from voyager.jobs.status import JobStatus
from voyager.settings import reload_settings


def _response(status_code: int = 200, json_data=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data
    resp.text = json.dumps(json_data)
    resp.headers = {}
    return resp


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("voyager.cli.setup_logging"):
        yield


@pytest.fixture
def runner():
    return CliRunner()


class TestVerifyCommand:

    def test_dry_run(self, runner, simple_project) -> None:
        result = runner.invoke(main, [
            "verify", str(simple_project), "--class-hash", CLASS_HASH,
            "--contract-name", "Foo", "--dry-run",
        ])
        assert result.exit_code == 0, result.output
        assert "src/foo_impl.cairo" in result.output
        assert "src/lib.cairo" in result.output
        assert "src/tests/foo.cairo" not in result.output
        assert "Dry run complete" in result.output

    def test_dry_run_with_test_files(self, runner, simple_project) -> None:
        result = runner.invoke(main, [
            "verify", str(simple_project), "--class-hash", CLASS_HASH,
            "--contract-name", "Foo", "--dry-run", "--test-files",
        ])
        assert result.exit_code == 0, result.output
        assert "src/tests/foo.cairo" in result.output

    def test_submit(self, runner, simple_project) -> None:
        with patch("voyager.api.client.httpx.post", return_value=_response(200, {"job_id": "abc-123"})) as post:
            result = runner.invoke(main, [
                "verify", str(simple_project), "--network", "sepolia",
                "--class-hash", CLASS_HASH, "--contract-name", "Foo",
            ])
        assert result.exit_code == 0, result.output
        assert "abc-123" in result.output
        body = post.call_args.kwargs["json"]
        assert body["contract_file"] == "src/foo_impl.cairo"
        assert body["license"] == "MIT"

    def test_submit_and_watch(self, runner, simple_project) -> None:
        job = {"status": 4, "name": "Foo", "class_hash": CLASS_HASH}
        with patch("voyager.api.client.httpx.post", return_value=_response(200, {"job_id": "abc-123"})), \
                patch("voyager.api.client.httpx.get", return_value=_response(200, job)):
            result = runner.invoke(main, [
                "verify", str(simple_project), "--network", "sepolia",
                "--class-hash", CLASS_HASH, "--contract-name", "Foo", "--watch",
            ])
        assert result.exit_code == 0, result.output
        assert "Contract verified" in result.output

    def test_watch_compile_failure_exits_1(self, runner, simple_project) -> None:
        job = {"status": 2, "message": "error: Identifier not found"}
        with patch("voyager.api.client.httpx.post", return_value=_response(200, {"job_id": "abc-123"})), \
                patch("voyager.api.client.httpx.get", return_value=_response(200, job)):
            result = runner.invoke(main, [
                "verify", str(simple_project), "--network", "sepolia",
                "--class-hash", CLASS_HASH, "--contract-name", "Foo", "--watch",
            ])
        assert result.exit_code == 1
        assert "Identifier not found" in result.output

    def test_requires_network_when_submitting(self, runner, simple_project) -> None:
        result = runner.invoke(main, [
            "verify", str(simple_project), "--class-hash", CLASS_HASH, "--contract-name", "Foo",
        ])
        assert result.exit_code == 1
        assert "No network selected" in result.output

    def test_requires_class_hash(self, runner, simple_project) -> None:
        result = runner.invoke(main, ["verify", str(simple_project), "--dry-run", "--contract-name", "Foo"])
        assert result.exit_code == 1
        assert "--class-hash" in result.output

    def test_unknown_package(self, runner, simple_project) -> None:
        result = runner.invoke(main, [
            "verify", str(simple_project), "--class-hash", CLASS_HASH,
            "--contract-name", "Foo", "--package", "q", "--dry-run",
        ])
        assert result.exit_code == 1
        assert "Package 'q' not found" in result.output


class TestBatchVerify:

    CONFIG = """\
        [[contracts]]
        class-hash = "0x123"
        contract-name = "Foo"

        [[contracts]]
        class-hash = "0x456"
        contract-name = "Bar"
        """

    def test_batch_dry_run(self, runner, simple_project) -> None:
        write(simple_project, ".voyager.toml", self.CONFIG)
        result = runner.invoke(main, ["verify", str(simple_project), "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "[1/2]" in result.output
        assert "[2/2]" in result.output
        assert "Batch Verification Summary" in result.output

    def test_batch_rejects_single_arguments(self, runner, simple_project) -> None:
        write(simple_project, ".voyager.toml", self.CONFIG)
        result = runner.invoke(main, ["verify", str(simple_project), "--dry-run", "--class-hash", "0x1"])
        assert result.exit_code == 1
        assert "cannot be combined" in result.output

    def test_batch_submit(self, runner, simple_project) -> None:
        write(simple_project, ".voyager.toml", '[voyager]\nnetwork = "mainnet"\n\n' + self.CONFIG)
        responses = [_response(200, {"job_id": "j1"}), _response(200, {"job_id": "j2"})]
        with patch("voyager.api.client.httpx.post", side_effect=responses) as post:
            result = runner.invoke(main, ["verify", str(simple_project)])
        assert result.exit_code == 0, result.output
        assert post.call_count == 2
        assert "j1" in result.output and "j2" in result.output


class TestStatusAndCheck:

    def test_status_no_wait_json(self, runner) -> None:
        job = {"status": 4, "name": "Foo"}
        with patch("voyager.api.client.httpx.get", return_value=_response(200, job)):
            result = runner.invoke(main, [
                "status", "abc", "--network", "mainnet", "--no-wait", "--format", "json",
            ])
        assert result.exit_code == 0, result.output
        assert '"status": "Success"' in result.output

    def test_status_not_found(self, runner) -> None:
        with patch("voyager.api.client.httpx.get", return_value=_response(404, {})):
            result = runner.invoke(main, ["status", "abc", "--network", "mainnet", "--no-wait"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_check_verified(self, runner) -> None:
        with patch("voyager.api.client.httpx.get", return_value=_response(200, {})):
            result = runner.invoke(main, ["check", CLASS_HASH, "--network", "mainnet"])
        assert result.exit_code == 0
        assert "is verified" in result.output

    def test_check_not_verified(self, runner) -> None:
        with patch("voyager.api.client.httpx.get", return_value=_response(404, {})):
            result = runner.invoke(main, ["check", CLASS_HASH, "--network", "mainnet"])
        assert result.exit_code == 0
        assert "not verified" in result.output


class TestHistoryCommands:

    def test_empty_history(self, runner) -> None:
        result = runner.invoke(main, ["history", "list"])
        assert result.exit_code == 0
        assert "No verification history" in result.output

    def test_clean_requires_one_mode(self, runner) -> None:
        result = runner.invoke(main, ["history", "clean"])
        assert result.exit_code == 1

    def test_stats(self, runner) -> None:
        result = runner.invoke(main, ["history", "stats"])
        assert result.exit_code == 0
        assert "Verification Statistics" in result.output

    def test_version(self, runner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestPersistentHistory:

    @pytest.fixture
    def history_db(self, monkeypatch, tmp_path):
        path = tmp_path / "history.db"
        monkeypatch.setenv("VOYAGER_HISTORY_ENABLED", "true")
        monkeypatch.setenv("VOYAGER_HISTORY_DB", str(path))
        reload_settings()
        yield path
        monkeypatch.undo()
        reload_settings()

    def test_recheck_updates_pending_jobs(self, runner, history_db) -> None:
        SQLHistoryStore(history_db).upsert(
            JobRecord(job_id="abc", contract_name="Foo", network="sepolia", status=JobStatus.PROCESSING)
        )
        with patch("voyager.api.client.httpx.get", return_value=_response(200, {"status": 4})) as get:
            result = runner.invoke(main, ["history", "recheck"])
        assert result.exit_code == 0, result.output
        assert "sepolia-api.voyager.online" in get.call_args.args[0]
        assert SQLHistoryStore(history_db).get("abc").status is JobStatus.SUCCESS

        result = runner.invoke(main, ["history", "status", "abc"])
        assert result.exit_code == 0
        assert "Success" in result.output

    def test_recheck_skips_unknown_network(self, runner, history_db) -> None:
        SQLHistoryStore(history_db).upsert(JobRecord(job_id="abc", network="custom"))
        with patch("voyager.api.client.httpx.get") as get:
            result = runner.invoke(main, ["history", "recheck"])
        assert result.exit_code == 0
        assert "Skipping abc" in result.output
        get.assert_not_called()

    def test_submit_then_list_and_clean(self, runner, history_db, simple_project) -> None:
        with patch("voyager.api.client.httpx.post", return_value=_response(200, {"job_id": "abc-123"})):
            runner.invoke(main, [
                "verify", str(simple_project), "--network", "sepolia",
                "--class-hash", CLASS_HASH, "--contract-name", "Foo",
            ])
        result = runner.invoke(main, ["history", "list"])
        assert result.exit_code == 0
        assert "abc-123" in result.output

        result = runner.invoke(main, ["history", "clean", "--all", "--yes"])
        assert result.exit_code == 0
        assert "Deleted 1 records" in result.output

    def test_history_status_unknown_job(self, runner, history_db) -> None:
        result = runner.invoke(main, ["history", "status", "nope"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_dry_run_has_no_side_effects(self, runner, history_db, simple_project) -> None:
        with patch("voyager.cli.VoyagerClient") as client_cls:
            result = runner.invoke(main, [
                "verify", str(simple_project), "--network", "sepolia",
                "--class-hash", CLASS_HASH, "--contract-name", "Foo", "--dry-run",
            ])
        assert result.exit_code == 0, result.output
        client_cls.assert_not_called()
        assert not history_db.exists()
