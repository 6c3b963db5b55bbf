"""The asml subcommands: init, make, cast, bind and burn."""

from __future__ import annotations

import shutil
import subprocess
import urllib.error
import urllib.request
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from asml import terraform
from asml.artifact import zip_files
from asml.bom import (
    ASML_VERSION,
    Function,
    Iomod,
    ProjectManifest,
    ServiceManifest,
    write_rust_function,
)
from asml.projectfs import Project, locate_asml_manifest
from asml.terraform import TerraformFunction, TerraformService

DEFAULT_SERVICE_NAME = "my-service"
DEFAULT_FUNCTION_NAME = "my-function"

_RUNTIME_URL = "http://runtime.assemblylift.akkoro.io/aws-lambda/{version}/bootstrap.zip"
_RUNTIME_DIR = Path(".asml") / "runtime"
_WASM_TARGET = "wasm32-unknown-unknown"
_BUILD_MODE = "release"


class CommandError(Exception):
    """Raised when a command cannot carry out its work."""


def bind(args: Any = None) -> None:
    """Bind the application to the cloud backend."""
    terraform.init()
    terraform.apply()


def burn(args: Any = None) -> None:
    """Destroy all infrastructure created by ``bind``."""
    terraform.destroy()


def _download_runtime() -> None:
    url = _RUNTIME_URL.format(version=ASML_VERSION)
    try:
        with urllib.request.urlopen(url) as response:
            data = response.read()
    except urllib.error.URLError as exc:
        raise CommandError(f"unable to fetch asml runtime from {url}: {exc}") from exc

    _RUNTIME_DIR.mkdir(parents=True, exist_ok=True)
    (_RUNTIME_DIR / "bootstrap.zip").write_bytes(data)


def _package_iomods(service_name: str, iomod: Iomod) -> None:
    dependencies = []
    for name, dependency in iomod.dependencies.items():
        if dependency.dependency_type != "file":
            raise CommandError("only type=file is available currently")
        runtime_path = _RUNTIME_DIR / name
        shutil.copy(dependency.source, runtime_path)
        dependencies.append(runtime_path)

    zip_files(dependencies, _RUNTIME_DIR / f"{service_name}.zip", "iomod/", False)


def _build_function(
    project: Project,
    service_id_name: str,
    service_name: str,
    tf_service: TerraformService,
    function: Function,
) -> TerraformFunction:
    artifact_dir = Path("net") / "services" / service_name / function.name
    artifact_dir.mkdir(parents=True, exist_ok=True)

    function_dir = project.service_dir(service_name).function_dir(function.name)
    try:
        subprocess.run(
            [
                "cargo",
                "build",
                f"--{_BUILD_MODE}",
                "--manifest-path",
                str(function_dir / "Cargo.toml"),
                "--target",
                _WASM_TARGET,
            ]
        )
    except OSError as exc:
        raise CommandError(f"could not run cargo: {exc}") from exc

    wasm_name = function.name.replace("-", "_")
    built = function_dir / "target" / _WASM_TARGET / _BUILD_MODE / f"{wasm_name}.wasm"
    wasm_path = artifact_dir / f"{function.name}.wasm"
    try:
        shutil.copy(built, wasm_path)
    except OSError as exc:
        print(f"ERROR: {exc}")

    zip_files([wasm_path], artifact_dir / f"{function.name}.zip", None, False)

    tf_function = TerraformFunction(
        name=function.name,
        handler_name=function.handler_name,
        service=service_id_name,
        service_has_layer=tf_service.has_layer,
        service_has_http_api=tf_service.has_http_api,
        http_verb=function.http.verb if function.http else None,
        http_path=function.http.path if function.http else None,
    )
    terraform.write_function(project.dir(), tf_function)
    return tf_function


def cast(args: Any = None) -> None:
    """Build the application found in the working directory."""
    cwd = Path.cwd()
    try:
        manifest = ProjectManifest.read(cwd)
    except OSError as exc:
        raise CommandError(f"could not read assemblylift.toml: {exc}") from exc
    project = Project(manifest.project.name, cwd)

    _download_runtime()
    terraform.fetch(project.dir())

    functions: list[TerraformFunction] = []
    services: list[TerraformService] = []

    for entry in manifest.services.values():
        service_manifest = ServiceManifest.read(project.service_dir(entry.name).dir)
        service_name = service_manifest.service.name

        tf_service = TerraformService(
            name=service_name,
            has_layer=service_manifest.iomod is not None,
            has_http_api=any(
                f.http is not None for f in service_manifest.api.functions.values()
            ),
        )
        services.append(tf_service)
        terraform.write_service(project.dir(), tf_service)

        if service_manifest.iomod is not None:
            _package_iomods(service_name, service_manifest.iomod)

        for function in service_manifest.api.functions.values():
            functions.append(
                _build_function(project, entry.name, service_name, tf_service, function)
            )

    terraform.write_root(project.dir(), manifest.project.name, functions, services)
    terraform.init()
    terraform.plan()


def check_rust_prereqs() -> bool:
    """Whether Cargo can be run."""
    try:
        subprocess.run(["cargo", "--version"], capture_output=True)
    except OSError:
        print("ERROR: missing Cargo!")
        return False
    return True


def init(args: Any) -> None:
    """Create a new application with a default service and function."""
    project_name = getattr(args, "project_name", None)
    if not project_name:
        raise CommandError("a project name is required")
    language = getattr(args, "language", "rust")

    project = Project(project_name, None)
    project.init(DEFAULT_SERVICE_NAME, DEFAULT_FUNCTION_NAME)
    terraform.fetch(project.dir())

    ProjectManifest.write(
        project.dir(),
        {"project_name": project_name, "default_service_name": DEFAULT_SERVICE_NAME},
    )
    ServiceManifest.write(
        project.service_dir(DEFAULT_SERVICE_NAME).dir,
        {"service_name": DEFAULT_SERVICE_NAME},
    )

    if language == "rust":
        if not check_rust_prereqs():
            raise CommandError("missing system dependencies")
        write_rust_function(
            project.service_dir(DEFAULT_SERVICE_NAME).function_dir(DEFAULT_FUNCTION_NAME),
            {"function_name": DEFAULT_FUNCTION_NAME},
        )
    elif language is not None:
        raise CommandError(f"unsupported language: {language}")

    print(f"\r\n✅  Done! Your project root is: {project.dir()}")


def parse_resource(resource: Sequence[str]) -> tuple[str | None, str | None]:
    """Split ``make``'s arguments into a resource type and name."""
    values = list(resource)[:2]
    values += [None] * (2 - len(values))
    return values[0], values[1]


def make(args: Any) -> None:
    """Add a service or a function to the application in the tree."""
    located = locate_asml_manifest()
    if located is None:
        raise CommandError("could not find assemblylift.toml in tree")
    manifest, root = located
    project = Project(manifest.project.name, root)

    resource_type, resource_name = parse_resource(getattr(args, "resource", None) or [])
    if resource_type not in ("service", "function"):
        raise CommandError(
            "must specify either 'service' or 'function' as an argument to make"
        )
    if resource_name is None:
        raise CommandError(f"missing name for {resource_type}")

    if resource_type == "service":
        ServiceManifest.write(
            project.service_dir(resource_name).dir, {"service_name": resource_name}
        )
        return

    parts = resource_name.split(".")
    if len(parts) != 2:
        raise CommandError("syntax is `make function <service>.<function>`")
    service_name, function_name = parts
    write_rust_function(
        project.service_dir(service_name).function_dir(function_name),
        {"function_name": function_name},
    )