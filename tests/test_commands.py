import subprocess
import urllib.error
import zipfile
from argparse import Namespace
from pathlib import Path
from unittest import mock

import pytest

from asml import commands, terraform
from asml.artifact import ArtifactError
from asml.bom import ProjectManifest, ServiceManifest
from asml.commands import CommandError
from asml.projectfs import Project
from asml.terraform import TerraformFunction, TerraformService


def _ok(cmd, *args, **kwargs):
    return subprocess.CompletedProcess(cmd, 0)


def _fake_terraform(root: Path) -> None:
    binary = root / ".asml" / "bin" / "terraform"
    binary.parent.mkdir(parents=True, exist_ok=True)
    binary.write_bytes(b"")


def _setup_project(root: Path, service_toml: str | None = None) -> None:
    ProjectManifest.write(
        root, {"project_name": "app", "default_service_name": "my-service" if service_toml is None else "svc"}
    )
    if service_toml is None:
        ServiceManifest.write(root / "services" / "my-service", {"service_name": "my-service"})
    else:
        service_dir = root / "services" / "svc"
        service_dir.mkdir(parents=True)
        (service_dir / "service.toml").write_text(service_toml)
    _fake_terraform(root)


class _Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, cmd, *args, **kwargs):
        self.calls.append(list(cmd))
        if cmd[0] == "cargo" and "--manifest-path" in cmd:
            manifest = Path(cmd[cmd.index("--manifest-path") + 1])
            wasm = (
                manifest.parent
                / "target"
                / "wasm32-unknown-unknown"
                / "release"
                / (manifest.parent.name.replace("-", "_") + ".wasm")
            )
            wasm.parent.mkdir(parents=True, exist_ok=True)
            wasm.write_bytes(b"\0asm")
        return subprocess.CompletedProcess(cmd, 0)


def test_parse_resource_takes_first_two():
    assert commands.parse_resource(["service", "svc", "extra"]) == ("service", "svc")


def test_parse_resource_empty():
    assert commands.parse_resource([]) == (None, None)
    assert commands.parse_resource(["service"]) == ("service", None)


def test_check_rust_prereqs_present():
    with mock.patch("subprocess.run", side_effect=_ok):
        assert commands.check_rust_prereqs() is True


def test_check_rust_prereqs_missing(capsys):
    with mock.patch("subprocess.run", side_effect=FileNotFoundError("cargo")):
        assert commands.check_rust_prereqs() is False
    assert "missing Cargo" in capsys.readouterr().out


def test_bind_runs_init_then_apply():
    recorder = _Recorder()
    with mock.patch("subprocess.run", side_effect=recorder):
        commands.bind(Namespace())
    binary = terraform.relative_binary_path()
    assert binary == ".asml/bin/terraform"
    assert recorder.calls == [
        [binary, "init", "./net"],
        [binary, "apply", "./net/plan"],
    ]


def test_burn_runs_destroy():
    recorder = _Recorder()
    with mock.patch("subprocess.run", side_effect=recorder):
        commands.burn(Namespace())
    assert recorder.calls == [[terraform.relative_binary_path(), "destroy", "./net"]]


def test_init_creates_project(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _fake_terraform(tmp_path / "app")
    with mock.patch("subprocess.run", side_effect=_ok):
        commands.init(Namespace(project_name="app", language="rust"))

    root = tmp_path / "app"
    manifest = ProjectManifest.read(root)
    assert manifest.project.name == "app"
    assert manifest.services["default"].name == "my-service"
    service = ServiceManifest.read(root / "services" / "my-service")
    assert service.service.name == "my-service"
    function_dir = root / "services" / "my-service" / "my-function"
    assert 'name = "my-function"' in (function_dir / "Cargo.toml").read_text()
    assert (function_dir / "src" / "lib.rs").is_file()
    assert (function_dir / ".cargo" / "config").is_file()


def test_init_without_language_writes_no_function(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _fake_terraform(tmp_path / "app")
    with mock.patch("subprocess.run", side_effect=_ok) as run:
        commands.init(Namespace(project_name="app", language=None))
    assert run.call_count == 0
    assert not (tmp_path / "app" / "services" / "my-service" / "my-function" / "Cargo.toml").exists()
    manifest = ProjectManifest.read(tmp_path / "app")
    assert manifest.project.name == "app"
    assert manifest.services["default"].name == "my-service"


def test_init_unsupported_language(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _fake_terraform(tmp_path / "app")
    with pytest.raises(CommandError, match="unsupported language"):
        commands.init(Namespace(project_name="app", language="cobol"))
    assert (tmp_path / "app" / "assemblylift.toml").is_file()


def test_init_missing_cargo(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _fake_terraform(tmp_path / "app")
    with mock.patch("subprocess.run", side_effect=FileNotFoundError("cargo")):
        with pytest.raises(CommandError, match="missing system dependencies"):
            commands.init(Namespace(project_name="app", language="rust"))


def test_make_service(tmp_path, monkeypatch):
    _setup_project(tmp_path)
    monkeypatch.chdir(tmp_path)
    commands.make(Namespace(resource=["service", "orders"]))
    assert ServiceManifest.read(tmp_path / "services" / "orders").service.name == "orders"


def test_make_function(tmp_path, monkeypatch):
    _setup_project(tmp_path)
    monkeypatch.chdir(tmp_path)
    commands.make(Namespace(resource=["function", "orders.create"]))
    function_dir = Project("app", tmp_path).service_dir("orders").function_dir("create")
    assert Path(function_dir) == tmp_path.resolve() / "services" / "orders" / "create"
    assert 'name = "create"' in (Path(function_dir) / "Cargo.toml").read_text()


def test_make_function_bad_syntax(tmp_path, monkeypatch):
    _setup_project(tmp_path)
    monkeypatch.chdir(tmp_path)
    with pytest.raises(CommandError, match="make function"):
        commands.make(Namespace(resource=["function", "orders"]))


def test_make_unknown_resource(tmp_path, monkeypatch):
    _setup_project(tmp_path)
    monkeypatch.chdir(tmp_path)
    with pytest.raises(CommandError, match="'service' or 'function'"):
        commands.make(Namespace(resource=["widget", "x"]))


def test_make_without_manifest(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(CommandError, match="could not find assemblylift.toml"):
        commands.make(Namespace(resource=["service", "x"]))


def test_cast_builds_everything(tmp_path, monkeypatch):
    _setup_project(tmp_path)
    monkeypatch.chdir(tmp_path)
    recorder = _Recorder()
    with mock.patch("urllib.request.urlopen") as urlopen, mock.patch(
        "subprocess.run", side_effect=recorder
    ):
        urlopen.return_value.__enter__.return_value.read.return_value = b"runtime"
        commands.cast(Namespace())

    assert (tmp_path / ".asml" / "runtime" / "bootstrap.zip").read_bytes() == b"runtime"
    artifact_dir = tmp_path / "net" / "services" / "my-service" / "my-function"
    with zipfile.ZipFile(artifact_dir / "my-function.zip") as archive:
        assert archive.namelist() == ["my-function.wasm"]
        assert archive.read("my-function.wasm") == b"\0asm"

    function = TerraformFunction(
        name="my-function",
        handler_name="handler",
        service="my-service",
        service_has_layer=False,
        service_has_http_api=False,
    )
    service = TerraformService(name="my-service", has_layer=False, has_http_api=False)
    assert (artifact_dir / "function.tf").read_text() == terraform.render_function(function)
    service_tf = tmp_path / "net" / "services" / "my-service" / "service.tf"
    assert service_tf.read_text() == terraform.render_service(service)
    main_tf = (tmp_path / "net" / "main.tf").read_text()
    assert main_tf == terraform.render_root("app", [function], [service])
    assert 'module "my-function"' in main_tf
    assert 'module "my-service"' in main_tf
    assert recorder.calls[-2:] == [
        [".asml/bin/terraform", "init", "./net"],
        [".asml/bin/terraform", "plan", "-out=./net/plan", "./net"],
    ]
    assert recorder.calls[0][:3] == ["cargo", "build", "--release"]


def test_cast_packages_file_dependencies(tmp_path, monkeypatch):
    dep_file = tmp_path / "plugin.bin"
    dep_file.write_bytes(b"plugin")
    service_toml = f"""
[service]
name = "svc"

[api]
name = "svc-api"

[api.functions.fn]
name = "fn"
handler_name = "handler"

[iomod.dependencies.dep]
from = "{dep_file.as_posix()}"
version = "1"
type = "file"
"""
    _setup_project(tmp_path, service_toml)
    monkeypatch.chdir(tmp_path)
    with mock.patch("urllib.request.urlopen") as urlopen, mock.patch(
        "subprocess.run", side_effect=_Recorder()
    ):
        urlopen.return_value.__enter__.return_value.read.return_value = b"runtime"
        commands.cast(Namespace())

    with zipfile.ZipFile(tmp_path / ".asml" / "runtime" / "svc.zip") as archive:
        assert archive.namelist() == ["iomod/dep"]
        assert archive.read("iomod/dep") == b"plugin"

    function = TerraformFunction(
        name="fn",
        handler_name="handler",
        service="svc",
        service_has_layer=True,
        service_has_http_api=False,
    )
    service = TerraformService(name="svc", has_layer=True, has_http_api=False)
    service_tf = tmp_path / "net" / "services" / "svc" / "service.tf"
    assert service_tf.read_text() == terraform.render_service(service)
    main_tf = (tmp_path / "net" / "main.tf").read_text()
    assert main_tf == terraform.render_root("app", [function], [service])
    assert "service_layer_arn = module.svc.service_layer_arn" in main_tf


def test_cast_rejects_non_file_dependency(tmp_path, monkeypatch):
    service_toml = """
[service]
name = "svc"

[api]
name = "svc-api"

[api.functions.fn]
name = "fn"
handler_name = "handler"

[iomod.dependencies.dep]
from = "somewhere"
version = "1"
type = "registry"
"""
    _setup_project(tmp_path, service_toml)
    monkeypatch.chdir(tmp_path)
    with mock.patch("urllib.request.urlopen") as urlopen, mock.patch(
        "subprocess.run", side_effect=_Recorder()
    ):
        urlopen.return_value.__enter__.return_value.read.return_value = b"runtime"
        with pytest.raises(CommandError, match="only type=file"):
            commands.cast(Namespace())


def test_cast_missing_wasm_fails_to_zip(tmp_path, monkeypatch):
    _setup_project(tmp_path)
    monkeypatch.chdir(tmp_path)
    with mock.patch("urllib.request.urlopen") as urlopen, mock.patch(
        "subprocess.run", side_effect=_ok
    ):
        urlopen.return_value.__enter__.return_value.read.return_value = b"runtime"
        with pytest.raises(ArtifactError):
            commands.cast(Namespace())


def test_cast_runtime_download_failure(tmp_path, monkeypatch):
    _setup_project(tmp_path)
    monkeypatch.chdir(tmp_path)
    with mock.patch("urllib.request.urlopen", side_effect=urllib.error.URLError("down")):
        with pytest.raises(CommandError, match="unable to fetch asml runtime"):
            commands.cast(Namespace())


def test_cast_without_manifest(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(CommandError, match="assemblylift.toml"):
        commands.cast(Namespace())