"""Tests for the publish_box CLI script."""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from boxpublisher.publisher.artifact import BuildArtifact
from boxpublisher.publisher.config import PublishConfig
from boxpublisher.publisher.orchestrator import PublishError
from boxpublisher.registry.manifest import decode_manifest
from boxpublisher.storage.memory import InMemoryBlobStore
from scripts.publish_box import build_parser, build_store, main, run_publish

BASE_URL = "https://mystorage.blob.core.windows.net"
KEY = base64.b64encode(b"key").decode()


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """main() reconfigures the root logger; undo it after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "publish.yml"
    path.write_text(
        "storage_account_name: mystorage\n"
        "container_name: boxes\n"
        f"access_key: {KEY}\n"
        "manifest: demo/manifest.json\n"
        "box_name: acme/demo\n"
        "box_dir: demo\n"
    )
    return path


@pytest.fixture
def box_file(tmp_path: Path) -> Path:
    path = tmp_path / "demo.box"
    path.write_bytes(b"box bytes")
    return path


@pytest.fixture
def store() -> InMemoryBlobStore:
    return InMemoryBlobStore(base_url=BASE_URL)


class TestBuildParser:
    def test_builder_required(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["demo.box"])
        assert exc_info.value.code == 2

    def test_overrides(self) -> None:
        args = build_parser().parse_args(
            ["-b", "vmware", "--version", "1.2.0", "--container", "other", "demo.box"]
        )
        assert args.builder == "vmware"
        assert args.version == "1.2.0"
        assert args.container_name == "other"
        assert args.files == [Path("demo.box")]


class TestMain:
    """Tests for main() exit codes."""

    def test_publish_success(
        self,
        config_file: Path,
        box_file: Path,
        store: InMemoryBlobStore,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        with patch("scripts.publish_box.AzureBlobStore") as azure:
            azure.from_config.return_value = store
            code = main(
                ["-c", str(config_file), "-b", "virtualbox", "--version", "1.0.0", str(box_file)]
            )

        assert code == 0
        assert capsys.readouterr().out.strip() == f"{BASE_URL}/boxes/demo/1.0.0/demo.box"
        assert ("boxes", "demo/1.0.0/demo.box") in store

    def test_box_name_override(
        self, config_file: Path, box_file: Path, store: InMemoryBlobStore
    ) -> None:
        with patch("scripts.publish_box.AzureBlobStore") as azure:
            azure.from_config.return_value = store
            code = main(
                ["-c", str(config_file), "-b", "vmware", "--box-name", "acme/other", str(box_file)]
            )

        assert code == 0
        manifest_obj = asyncio.run(store.get_object("boxes", "demo/manifest.json"))
        manifest = decode_manifest(manifest_obj.data)
        assert manifest.name == "acme/other"
        assert manifest.version_strings == ["0.1.0"]
        assert manifest.versions[0].provider_names == ["vmware_desktop"]

    def test_metrics_file_written_on_failure(
        self, config_file: Path, tmp_path: Path, store: InMemoryBlobStore
    ) -> None:
        metrics_file = tmp_path / "boxpublisher.prom"

        with patch("scripts.publish_box.AzureBlobStore") as azure:
            azure.from_config.return_value = store
            code = main(
                [
                    "-c",
                    str(config_file),
                    "-b",
                    "virtualbox",
                    "--metrics-file",
                    str(metrics_file),
                    str(tmp_path / "absent.box"),
                ]
            )

        assert code == 1
        text = metrics_file.read_text()
        assert 'boxpublisher_publish_failures_total{stage="idle"} 1.0' in text

    def test_config_error_exit_2(self, tmp_path: Path, box_file: Path) -> None:
        code = main(["-c", str(tmp_path / "missing.yml"), "-b", "virtualbox", str(box_file)])
        assert code == 2

    def test_publish_error_exit_1(
        self, config_file: Path, tmp_path: Path, store: InMemoryBlobStore
    ) -> None:
        first = tmp_path / "a.box"
        second = tmp_path / "b.box"
        first.write_bytes(b"a")
        second.write_bytes(b"b")

        with patch("scripts.publish_box.AzureBlobStore") as azure:
            azure.from_config.return_value = store
            code = main(["-c", str(config_file), "-b", "virtualbox", str(first), str(second)])

        assert code == 1
        assert store.calls == []


class TestDryRun:
    """--dry-run publishes against an in-memory store."""

    def test_parser_flag(self) -> None:
        args = build_parser().parse_args(["-b", "virtualbox", "--dry-run", "demo.box"])
        assert args.dry_run is True
        assert build_parser().parse_args(["-b", "virtualbox", "demo.box"]).dry_run is False

    def test_build_store_dry_run_uses_account_endpoint(self) -> None:
        config = PublishConfig(
            storage_account_name="mystorage",
            container_name="boxes",
            access_key=KEY,
            manifest="demo/manifest.json",
            box_name="acme/demo",
            box_dir="demo",
        )

        store = build_store(config, dry_run=True)

        assert isinstance(store, InMemoryBlobStore)
        assert store.object_url("boxes", "demo/1.0.0/demo.box") == (
            f"{BASE_URL}/boxes/demo/1.0.0/demo.box"
        )

    def test_dry_run_never_builds_azure_client(
        self,
        config_file: Path,
        box_file: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        with patch("scripts.publish_box.AzureBlobStore") as azure:
            code = main(
                [
                    "-c",
                    str(config_file),
                    "-b",
                    "virtualbox",
                    "--version",
                    "1.0.0",
                    "--dry-run",
                    str(box_file),
                ]
            )

        assert code == 0
        azure.from_config.assert_not_called()
        assert capsys.readouterr().out.strip() == f"{BASE_URL}/boxes/demo/1.0.0/demo.box"


class TestRunPublish:
    @pytest.mark.asyncio
    async def test_store_closed_on_failure(self, tmp_path: Path) -> None:
        config = PublishConfig(
            storage_account_name="mystorage",
            container_name="boxes",
            access_key=KEY,
            manifest="demo/manifest.json",
            box_name="acme/demo",
            box_dir="demo",
        )
        store = InMemoryBlobStore()
        store.close = AsyncMock()  # type: ignore[method-assign]

        with pytest.raises(PublishError):
            await run_publish(config, BuildArtifact("virtualbox", ()), store)

        store.close.assert_awaited_once()
