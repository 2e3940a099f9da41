"""
Tests for the upload orchestrator state machine and the upload_files contract.

Uses a scripted stand-in for the provider client, so every scenario runs
without network access; backoff sleeps are recorded instead of slept.
"""

from pathlib import Path
from types import SimpleNamespace

import pytest

from conftest import BUCKET_NAME, DOWNLOAD_URL, ScriptedClient, envelope
from artifact_uploader.storage.errors import (
    ErrorKind,
    InternalFaultError,
    RetryBudgetExhaustedError,
    UnrecoverableUploadError,
    UnsupportedContentTypeError,
)
from artifact_uploader.storage.models import ListingEntry
from artifact_uploader.uploader import candidates as candidates_module
from artifact_uploader.uploader.candidates import collect_candidates, compute_content_hash
from artifact_uploader.uploader.orchestrator import UploadOrchestrator, upload_files
from artifact_uploader.uploader.transitions import UploadState
from artifact_uploader.utils import config as config_module
from artifact_uploader.utils.config import UploaderConfig


class Sleeps(list):
    """Sleeper that records requested delays."""

    def __call__(self, seconds: float) -> None:
        self.append(seconds)


@pytest.fixture
def sleeps() -> Sleeps:
    return Sleeps()


def build(client, credentials, metrics, sleeps, paths, subdirectory="", max_attempts=3):
    return UploadOrchestrator(
        credentials=credentials,
        subdirectory=subdirectory,
        candidates=collect_candidates(subdirectory, paths),
        client=client,
        max_attempts=max_attempts,
        backoff_seconds=1.0,
        sleeper=sleeps,
        metrics=metrics,
    )


def url_for(key: str) -> str:
    return f"{DOWNLOAD_URL}/file/{BUCKET_NAME}/{key}"


class TestHappyPath:
    def test_uploads_every_new_file(self, artifact_dir, credentials, metrics, sleeps):
        paths = [artifact_dir / "run-1.zip", artifact_dir / "run-1.txt"]
        client = ScriptedClient()

        result = build(client, credentials, metrics, sleeps, paths, subdirectory="bench").run()

        assert result == [
            (paths[0], url_for("bench/run-1.zip")),
            (paths[1], url_for("bench/run-1.txt")),
        ]
        assert len(client.calls["authorize"]) == 1
        assert client.calls["list_file_names"][0][1] == "bench"
        assert len(client.calls["get_upload_url"]) == 1
        assert [c["relative_key"] for c in client.calls["upload_file"]] == [
            "bench/run-1.zip",
            "bench/run-1.txt",
        ]
        assert sleeps == []

    def test_single_lease_reused_for_all_uploads(self, artifact_dir, credentials, metrics, sleeps):
        paths = [artifact_dir / "run-1.zip", artifact_dir / "run-1.txt"]
        client = ScriptedClient()

        build(client, credentials, metrics, sleeps, paths).run()

        leases = {c["lease"] for c in client.calls["upload_file"]}
        assert len(leases) == 1

    def test_upload_headers_carry_hash_and_content_type(
        self, artifact_dir, credentials, metrics, sleeps
    ):
        path = artifact_dir / "run-1.zip"
        client = ScriptedClient()

        build(client, credentials, metrics, sleeps, [path]).run()

        call = client.calls["upload_file"][0]
        assert call["content_type"] == "application/zip"
        assert call["content_hash"] == compute_content_hash(path)
        assert call["size"] == path.stat().st_size


class TestDedup:
    def test_one_of_two_files_already_uploaded(self, artifact_dir, credentials, metrics, sleeps):
        file_a = artifact_dir / "run-1.zip"
        file_b = artifact_dir / "run-1.txt"
        client = ScriptedClient(
            existing=[ListingEntry("run-1.zip", compute_content_hash(file_a))]
        )

        result = build(client, credentials, metrics, sleeps, [file_a, file_b]).run()

        assert len(client.calls["get_upload_url"]) == 1
        assert [c["relative_key"] for c in client.calls["upload_file"]] == ["run-1.txt"]
        assert dict(result) == {file_a: url_for("run-1.zip"), file_b: url_for("run-1.txt")}

    def test_everything_already_uploaded_skips_uploads(
        self, artifact_dir, credentials, metrics, sleeps
    ):
        paths = [artifact_dir / "run-1.zip", artifact_dir / "run-1.txt"]
        client = ScriptedClient(
            existing=[ListingEntry(p.name, compute_content_hash(p)) for p in paths]
        )

        result = build(client, credentials, metrics, sleeps, paths).run()

        assert client.calls["upload_file"] == []
        assert client.calls["get_upload_url"] == []
        assert len(result) == 2

    def test_changed_content_forces_upload(self, artifact_dir, credentials, metrics, sleeps):
        path = artifact_dir / "run-1.zip"
        client = ScriptedClient(existing=[ListingEntry("run-1.zip", "0" * 40)])

        build(client, credentials, metrics, sleeps, [path]).run()

        assert len(client.calls["upload_file"]) == 1

    def test_unreachable_object_is_uploaded_again(self, artifact_dir, credentials, metrics, sleeps):
        path = artifact_dir / "run-1.zip"
        client = ScriptedClient(
            existing=[ListingEntry("run-1.zip", compute_content_hash(path))],
            reachable=[],
        )

        build(client, credentials, metrics, sleeps, [path]).run()

        assert len(client.calls["upload_file"]) == 1

    def test_same_content_from_different_paths_gets_same_url(
        self, tmp_path, credentials, metrics, sleeps
    ):
        first = tmp_path / "one" / "map.zip"
        second = tmp_path / "two" / "map.zip"
        for path in (first, second):
            path.parent.mkdir()
            path.write_bytes(b"identical map archive")

        uploaded = build(ScriptedClient(), credentials, metrics, sleeps, [first], "maps").run()
        client = ScriptedClient(existing=[ListingEntry("maps/map.zip", compute_content_hash(first))])
        deduped = build(client, credentials, metrics, sleeps, [second], "maps").run()

        assert uploaded[0][1] == deduped[0][1] == url_for("maps/map.zip")
        assert client.calls["upload_file"] == []


class TestRecovery:
    def test_listing_unauthorized_once_reauthorizes(
        self, artifact_dir, credentials, metrics, sleeps
    ):
        client = ScriptedClient(listing=[envelope(401, ErrorKind.EXPIRED_AUTH_TOKEN)])
        orchestrator = build(client, credentials, metrics, sleeps, [artifact_dir / "run-1.zip"])

        orchestrator.run()

        assert len(client.calls["authorize"]) == 2
        first_session = client.calls["list_file_names"][0][0]
        assert first_session.dirty is True
        assert orchestrator.session is not first_session
        assert orchestrator.budget.attempts == 1
        assert orchestrator.state is UploadState.DONE

    def test_expired_upload_token_refetches_upload_url_only(
        self, artifact_dir, credentials, metrics, sleeps
    ):
        client = ScriptedClient(uploads=[envelope(401, ErrorKind.EXPIRED_AUTH_TOKEN)])

        result = build(client, credentials, metrics, sleeps, [artifact_dir / "run-1.zip"]).run()

        assert len(result) == 1
        assert len(client.calls["authorize"]) == 1
        assert len(client.calls["get_upload_url"]) == 2
        leases = [c["lease"].authorization_token for c in client.calls["upload_file"]]
        assert leases == ["upload-token-1", "upload-token-2"]

    def test_request_timeout_retries_only_pending_files(
        self, artifact_dir, credentials, metrics, sleeps
    ):
        paths = [artifact_dir / "run-1.zip", artifact_dir / "run-1.txt"]
        client = ScriptedClient(uploads=[None, envelope(408, ErrorKind.REQUEST_TIMEOUT)])

        build(client, credentials, metrics, sleeps, paths).run()

        keys = [c["relative_key"] for c in client.calls["upload_file"]]
        assert keys == ["run-1.zip", "run-1.txt", "run-1.txt"]
        assert sleeps == [1.0]
        assert len(client.calls["get_upload_url"]) == 1

    def test_upload_url_service_unavailable_restarts_from_auth(
        self, artifact_dir, credentials, metrics, sleeps
    ):
        client = ScriptedClient(upload_urls=[envelope(503, ErrorKind.SERVICE_UNAVAILABLE)])

        build(client, credentials, metrics, sleeps, [artifact_dir / "run-1.zip"]).run()

        assert len(client.calls["authorize"]) == 2
        assert len(client.calls["list_file_names"]) == 2
        assert sleeps == [1.0]

    def test_upload_send_error_refreshes_listing(self, artifact_dir, credentials, metrics, sleeps):
        path = artifact_dir / "run-1.zip"
        landed = ListingEntry("run-1.zip", compute_content_hash(path))
        client = ScriptedClient(
            listing=[[], [landed]],
            uploads=[envelope(0, ErrorKind.SEND_ERROR)],
        )

        result = build(client, credentials, metrics, sleeps, [path]).run()

        assert len(client.calls["list_file_names"]) == 2
        assert len(client.calls["upload_file"]) == 1
        assert result == [(path, url_for("run-1.zip"))]


class TestTerminalFailures:
    def test_listing_service_unavailable_exhausts_budget(
        self, artifact_dir, credentials, metrics, sleeps
    ):
        unavailable = envelope(503, ErrorKind.SERVICE_UNAVAILABLE)
        client = ScriptedClient(listing=[unavailable, unavailable, unavailable, unavailable])

        with pytest.raises(RetryBudgetExhaustedError, match="Exhausted upload attempts"):
            build(client, credentials, metrics, sleeps, [artifact_dir / "run-1.zip"]).run()

        assert len(client.calls["list_file_names"]) == 3
        assert sleeps == [1.0, 1.0, 1.0]

    def test_budget_spans_states(self, artifact_dir, credentials, metrics, sleeps):
        client = ScriptedClient(
            listing=[envelope(401, ErrorKind.BAD_AUTH_TOKEN)],
            upload_urls=[envelope(401, ErrorKind.BAD_AUTH_TOKEN)],
            uploads=[envelope(503, ErrorKind.SERVICE_UNAVAILABLE)],
        )
        orchestrator = build(client, credentials, metrics, sleeps, [artifact_dir / "run-1.zip"])

        with pytest.raises(RetryBudgetExhaustedError):
            orchestrator.run()

        assert orchestrator.budget.attempts == 3
        assert orchestrator.state is UploadState.FAILED

    def test_larger_budget_allows_more_recoveries(self, artifact_dir, credentials, metrics, sleeps):
        unavailable = envelope(503, ErrorKind.SERVICE_UNAVAILABLE)
        client = ScriptedClient(listing=[unavailable, unavailable, unavailable])

        result = build(
            client, credentials, metrics, sleeps, [artifact_dir / "run-1.zip"], max_attempts=4
        ).run()

        assert len(result) == 1

    def test_cap_exceeded_aborts_immediately(self, artifact_dir, credentials, metrics, sleeps):
        paths = [artifact_dir / "run-1.zip", artifact_dir / "run-1.txt"]
        client = ScriptedClient(uploads=[envelope(403, ErrorKind.CAP_EXCEEDED)])
        orchestrator = build(client, credentials, metrics, sleeps, paths)

        with pytest.raises(UnrecoverableUploadError, match="cap exceeded"):
            orchestrator.run()

        assert len(client.calls["upload_file"]) == 1
        assert orchestrator.budget.attempts == 0

    def test_missing_upload_capability_aborts(self, artifact_dir, credentials, metrics, sleeps):
        client = ScriptedClient(uploads=[envelope(401, ErrorKind.UNAUTHORIZED)])

        with pytest.raises(UnrecoverableUploadError, match="does not allow uploading"):
            build(client, credentials, metrics, sleeps, [artifact_dir / "run-1.zip"]).run()

    def test_denied_authorization_aborts(self, artifact_dir, credentials, metrics, sleeps):
        client = ScriptedClient(authorize=[envelope(401, ErrorKind.UNAUTHORIZED)])

        with pytest.raises(UnrecoverableUploadError, match="Failed to authenticate"):
            build(client, credentials, metrics, sleeps, [artifact_dir / "run-1.zip"]).run()

        assert client.calls["list_file_names"] == []

    def test_impossible_status_is_internal_fault(self, artifact_dir, credentials, metrics, sleeps):
        client = ScriptedClient(uploads=[envelope(405, ErrorKind.METHOD_NOT_ALLOWED)])

        with pytest.raises(InternalFaultError) as excinfo:
            build(client, credentials, metrics, sleeps, [artifact_dir / "run-1.zip"]).run()

        assert excinfo.value.state == "UPLOAD_ALL"
        assert excinfo.value.envelope.status == 405

    def test_unsupported_extension_is_controlled_error(
        self, tmp_path, credentials, metrics, sleeps
    ):
        path = tmp_path / "results.sqlite"
        path.write_bytes(b"SQLite format 3")
        client = ScriptedClient()

        with pytest.raises(UnsupportedContentTypeError) as excinfo:
            build(client, credentials, metrics, sleeps, [path]).run()

        assert excinfo.value.extension == ".sqlite"
        assert client.calls["upload_file"] == []


class TestUploadFiles:
    """Tests for the collaborator-facing upload_files contract."""

    @pytest.fixture
    def config(self) -> UploaderConfig:
        return UploaderConfig(max_attempts=3, backoff_seconds=0.0)

    def test_success_returns_path_url_pairs(self, artifact_dir, credentials, metrics, config):
        paths = [str(artifact_dir / "run-1.zip"), str(artifact_dir / "run-1.txt")]
        client = ScriptedClient()

        outcome = upload_files(
            "bench", paths, credentials=credentials, config=config, client=client, metrics=metrics
        )

        assert outcome.success is True
        assert outcome.error_message is None
        assert outcome.urls == [
            (paths[0], url_for("bench/run-1.zip")),
            (paths[1], url_for("bench/run-1.txt")),
        ]
        assert outcome.as_dict()[paths[1]] == url_for("bench/run-1.txt")
        assert client.closed is False

    def test_missing_file_fails_before_network(self, artifact_dir, credentials, metrics, config):
        client = ScriptedClient()

        outcome = upload_files(
            "",
            [str(artifact_dir / "run-1.zip"), str(artifact_dir / "missing.zip")],
            credentials=credentials,
            config=config,
            client=client,
            metrics=metrics,
        )

        assert outcome.success is False
        assert outcome.error_type == "InvalidInputError"
        assert "does not exist" in outcome.error_message
        assert all(calls == [] for calls in client.calls.values())

    def test_directory_input_fails_before_network(self, tmp_path, credentials, metrics, config):
        client = ScriptedClient()

        outcome = upload_files(
            "", [str(tmp_path)], credentials=credentials, config=config, client=client, metrics=metrics
        )

        assert outcome.success is False
        assert "Cannot upload a folder" in outcome.error_message
        assert client.calls["authorize"] == []

    def test_empty_input_succeeds_without_network(self, credentials, metrics, config):
        client = ScriptedClient()

        outcome = upload_files(
            "", [], credentials=credentials, config=config, client=client, metrics=metrics
        )

        assert outcome.success is True
        assert outcome.urls == []
        assert client.calls["authorize"] == []

    def test_cap_exceeded_reported_as_message(self, artifact_dir, credentials, metrics, config):
        client = ScriptedClient(uploads=[envelope(403, ErrorKind.CAP_EXCEEDED)])

        outcome = upload_files(
            "",
            [str(artifact_dir / "run-1.zip")],
            credentials=credentials,
            config=config,
            client=client,
            metrics=metrics,
        )

        assert outcome.success is False
        assert outcome.urls == []
        assert outcome.error_type == "UnrecoverableUploadError"
        assert "cap exceeded" in outcome.error_message.lower()

    def test_exhausted_budget_reported_with_attempts(
        self, artifact_dir, credentials, metrics, config
    ):
        unavailable = envelope(503, ErrorKind.SERVICE_UNAVAILABLE)
        client = ScriptedClient(listing=[unavailable] * 3)

        outcome = upload_files(
            "",
            [str(artifact_dir / "run-1.zip")],
            credentials=credentials,
            config=config,
            client=client,
            metrics=metrics,
        )

        assert outcome.success is False
        assert outcome.error_type == "RetryBudgetExhaustedError"
        assert "Exhausted upload attempts" in outcome.error_message
        assert outcome.attempts == 3

    def test_internal_fault_is_distinct_outcome(self, artifact_dir, credentials, metrics, config):
        client = ScriptedClient(uploads=[envelope(405, ErrorKind.METHOD_NOT_ALLOWED)])

        outcome = upload_files(
            "",
            [str(artifact_dir / "run-1.zip")],
            credentials=credentials,
            config=config,
            client=client,
            metrics=metrics,
        )

        assert outcome.success is False
        assert outcome.error_type == "InternalFaultError"
        assert outcome.error_message.startswith("Internal error")
        assert metrics.registry.get_sample_value(
            "uploader_runs_total", {"outcome": "internal_error"}
        ) == 1

    def test_unsupported_content_type_reported(self, tmp_path, credentials, metrics, config):
        path = tmp_path / "frames.bin"
        path.write_bytes(b"\x00\x01\x02")

        outcome = upload_files(
            "",
            [str(path)],
            credentials=credentials,
            config=config,
            client=ScriptedClient(),
            metrics=metrics,
        )

        assert outcome.success is False
        assert outcome.error_type == "UnsupportedContentTypeError"
        assert "Unsupported content type" in outcome.error_message

    def test_missing_credentials_reported(self, artifact_dir, metrics, config, monkeypatch):
        monkeypatch.delenv("UPLOADER_KEY_ID", raising=False)
        monkeypatch.delenv("UPLOADER_APPLICATION_KEY", raising=False)
        client = ScriptedClient()

        outcome = upload_files(
            "", [str(artifact_dir / "run-1.zip")], config=config, client=client, metrics=metrics
        )

        assert outcome.success is False
        assert outcome.error_type == "CredentialsNotFoundError"
        assert client.calls["authorize"] == []

    def test_credentials_resolved_from_environment(
        self, artifact_dir, metrics, config, monkeypatch
    ):
        monkeypatch.setenv("UPLOADER_KEY_ID", "env-key")
        monkeypatch.setenv("UPLOADER_APPLICATION_KEY", "env-secret")
        client = ScriptedClient()

        outcome = upload_files(
            "", [str(artifact_dir / "run-1.zip")], config=config, client=client, metrics=metrics
        )

        assert outcome.success is True
        assert client.calls["authorize"][0].key_id == "env-key"

    def test_malformed_environment_setting_reported(
        self, artifact_dir, credentials, metrics, monkeypatch, tmp_path
    ):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(config_module, "_config", None)
        monkeypatch.setenv("UPLOADER_MAX_ATTEMPTS", "abc")
        client = ScriptedClient()

        outcome = upload_files(
            "", [str(artifact_dir / "run-1.zip")], credentials=credentials, client=client, metrics=metrics
        )

        assert outcome.success is False
        assert outcome.error_type == "ConfigurationError"
        assert "UPLOADER_MAX_ATTEMPTS" in outcome.error_message
        assert metrics.registry.get_sample_value("uploader_runs_total", {"outcome": "failed"}) == 1.0
        assert client.calls["authorize"] == []

    def test_malformed_credentials_file_reported(self, artifact_dir, metrics, monkeypatch, tmp_path):
        monkeypatch.delenv("UPLOADER_KEY_ID", raising=False)
        monkeypatch.delenv("UPLOADER_APPLICATION_KEY", raising=False)
        config_file = tmp_path / "uploader.yaml"
        config_file.write_text("credentials: [unclosed\n")
        config = UploaderConfig(max_attempts=3, backoff_seconds=0.0, config_file=str(config_file))
        client = ScriptedClient()

        outcome = upload_files(
            "", [str(artifact_dir / "run-1.zip")], config=config, client=client, metrics=metrics
        )

        assert outcome.success is False
        assert outcome.error_type == "ConfigurationError"
        assert str(config_file) in outcome.error_message
        assert metrics.registry.get_sample_value("uploader_runs_total", {"outcome": "failed"}) == 1.0
        assert client.calls["authorize"] == []

    def test_file_removed_mid_run_reported(self, tmp_path, credentials, metrics, config):
        path = tmp_path / "run-1.zip"
        path.write_bytes(b"PK\x03\x04 run one")

        class VanishingFileClient(ScriptedClient):
            def get_upload_url(self, session):
                path.unlink()
                return super().get_upload_url(session)

        client = VanishingFileClient()

        outcome = upload_files(
            "", [str(path)], credentials=credentials, config=config, client=client, metrics=metrics
        )

        assert outcome.success is False
        assert outcome.error_type == "InvalidInputError"
        assert "Cannot read file" in outcome.error_message
        assert client.calls["upload_file"] == []
        assert metrics.registry.get_sample_value("uploader_runs_total", {"outcome": "failed"}) == 1.0


def test_relative_keys_fixed_for_run(artifact_dir: Path, credentials, metrics, sleeps):
    client = ScriptedClient(uploads=[envelope(503, ErrorKind.SERVICE_UNAVAILABLE)])
    orchestrator = build(client, credentials, metrics, sleeps, [artifact_dir / "run-1.zip"], "maps")

    orchestrator.run()

    keys = {c["relative_key"] for c in client.calls["upload_file"]}
    assert keys == {"maps/run-1.zip"}
    assert orchestrator.candidates[0].relative_key == "maps/run-1.zip"


def test_listing_prefix_uses_object_key_separator(
    artifact_dir: Path, credentials, metrics, sleeps, monkeypatch
):
    monkeypatch.setattr(candidates_module, "os", SimpleNamespace(sep="\\"))
    path = artifact_dir / "run-1.zip"
    client = ScriptedClient(existing=[ListingEntry("maps/sub/run-1.zip", compute_content_hash(path))])
    orchestrator = build(client, credentials, metrics, sleeps, [path], "maps\\sub")

    result = orchestrator.run()

    assert [prefix for _session, prefix in client.calls["list_file_names"]] == ["maps/sub"]
    assert orchestrator.candidates[0].relative_key == "maps/sub/run-1.zip"
    assert client.calls["upload_file"] == []
    assert result == [(path, url_for("maps/sub/run-1.zip"))]
