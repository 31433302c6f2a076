"""Unit tests for request assembly in voyager/payload.py."""

from __future__ import annotations

import base64

from tests.conftest import CLASS_HASH
from voyager.files.collector import FileCollector
from voyager.payload import DEFAULT_LICENSE, PayloadBuilder
from voyager.project.manifest import DEV_DEPENDENCIES_PLACEHOLDER
from voyager.project.models import BuildTool


def _build(descriptor, **kwargs):
    files = FileCollector().collect(descriptor)
    return PayloadBuilder().build(
        descriptor,
        files,
        contract_name=kwargs.pop("contract_name", "Foo"),
        contract_file=kwargs.pop("contract_file", "src/foo_impl.cairo"),
        **kwargs,
    )


class TestPayloadBuilder:

    def test_metadata(self, resolver, simple_project) -> None:
        request = _build(resolver.resolve(simple_project), class_hash=CLASS_HASH)
        assert request.package_name == "p"
        assert request.package_version == "0.1.0"
        assert request.license == "MIT"
        assert request.build_tool is BuildTool.scarb
        assert request.cairo_version == "2.8.4"
        assert request.project_dir_path == "."
        assert request.file_paths == ["Scarb.toml", "src/foo_impl.cairo", "src/lib.cairo"]

    def test_explicit_license_wins(self, resolver, simple_project) -> None:
        request = _build(resolver.resolve(simple_project), license="Apache-2.0")
        assert request.license == "Apache-2.0"

    def test_default_license(self, resolver, workspace_project) -> None:
        descriptor = resolver.resolve(workspace_project, package="nft")
        descriptor = descriptor.model_copy(update={"license": None})
        request = _build(descriptor, contract_file="packages/nft/src/lib.cairo")
        assert request.license == DEFAULT_LICENSE

    def test_dev_dependencies_stripped_from_manifest(self, resolver, simple_project) -> None:
        request = _build(resolver.resolve(simple_project))
        manifest = request.files["Scarb.toml"].decode()
        assert "snforge_std" not in manifest
        assert DEV_DEPENDENCIES_PLACEHOLDER in manifest
        source = (simple_project / "src" / "foo_impl.cairo").read_bytes()
        assert request.files["src/foo_impl.cairo"] == source

    def test_total_size(self, resolver, simple_project) -> None:
        request = _build(resolver.resolve(simple_project))
        assert request.total_size == sum(len(c) for c in request.files.values())


class TestVerificationRequestPayload:

    def test_wire_body(self, resolver, simple_project) -> None:
        request = _build(resolver.resolve(simple_project), class_hash=CLASS_HASH)
        body = request.to_payload()
        assert body["name"] == "Foo"
        assert body["version"] == "0.1.0"
        assert body["contract_file"] == "src/foo_impl.cairo"
        assert body["build_tool"] == "scarb"
        assert body["dojo_version"] is None
        assert "class_hash" not in body
        decoded = base64.b64decode(body["files"]["src/lib.cairo"])
        assert decoded == request.files["src/lib.cairo"]

    def test_dojo_build_tool_is_sozo(self, resolver, simple_project) -> None:
        descriptor = resolver.resolve(simple_project).model_copy(
            update={"build_tool": BuildTool.dojo, "dojo_version": "1.0.0"}
        )
        body = _build(descriptor).to_payload()
        assert body["build_tool"] == "sozo"
        assert body["dojo_version"] == "1.0.0"

    def test_preview_has_no_contents(self, resolver, simple_project) -> None:
        preview = _build(resolver.resolve(simple_project), class_hash=CLASS_HASH).preview()
        assert preview["class_hash"] == CLASS_HASH
        assert preview["file_count"] == 3
        assert preview["files"] == ["Scarb.toml", "src/foo_impl.cairo", "src/lib.cairo"]

    def test_filter_warning_reports_bytes(self, caplog) -> None:
        content = (
            '[package]\nname = "p"\ndescription = "Überprüfung"\n\n'
            '[dev-dependencies]\nsnforge_std = "0.30.0"\n'
        ).encode("utf-8")
        with caplog.at_level("WARNING", logger="voyager.payload"):
            filtered = PayloadBuilder.filter_manifest("Scarb.toml", content)
        assert DEV_DEPENDENCIES_PLACEHOLDER.encode() in filtered
        assert f"size: {len(content)} -> {len(filtered)} bytes" in caplog.text
