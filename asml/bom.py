"""Project documents: manifests and the files generated from templates."""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Any

from asml.templating import render

ASML_VERSION = "0.2.0"

_ROOT_GITIGNORE = """.asml/
net/
"""

_ASSEMBLYLIFT_TOML = """# Generated with assemblylift-cli {{asml_version}}

[project]
name = "{{project_name}}"
version = "0.1.0"

[services]
default = { name = "{{default_service_name}}" }
"""

_SERVICE_TOML = """# Generated with assemblylift-cli {{asml_version}}

[service]
name = "{{service_name}}"
version = ""

[api]
name = "{{service_name}}-api"

[api.functions.my-function]
name = "my-function"
handler_name = "handler"
"""

_FUNCTION_CARGO_TOML = """# Generated with assemblylift-cli {{asml_version}}

[package]
name = "{{function_name}}"
version = "0.1.0"
edition = "2018"

[lib]
crate-type = ["cdylib", "rlib"]

[dependencies]
direct-executor = "0.3.0"
serde_json = "1.0.53"
asml_core = { version = "0.2.0", package = "assemblylift-core-guest" }
asml_core_io = { version = "0.2.1", package = "assemblylift-core-io-guest" }
asml_awslambda = { version = "0.2.2", package = "assemblylift-awslambda-guest" }

"""

_FUNCTION_CARGO_CONFIG = """# Generated with assemblylift-cli {{asml_version}}

[build]
target = "wasm32-unknown-unknown"
"""

_FUNCTION_LIB_RS = """// Generated with assemblylift-cli {{asml_version}}

extern crate asml_awslambda;

use asml_core::GuestCore;
use asml_awslambda::{*, AwsLambdaClient, LambdaContext};

handler!(context: LambdaContext, async {
    let event = context.event;
    AwsLambdaClient::console_log(format!("Read event: {:?}", event));

    AwsLambdaClient::success("OK".to_string());
});
"""

_FUNCTION_GITIGNORE = """// Generated with assemblylift-cli {{asml_version}}
.DS_Store
*.wasm
target/
build/
"""


@dataclass(frozen=True)
class Document:
    """A file name relative to a target directory and its template."""

    file_name: str
    document: str


def write_to_file(path: str | PathLike, contents: str) -> None:
    """Write ``contents`` to ``path``, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")
    print(f"📄 > Wrote {path}")


def write_documents(
    path: str | PathLike, docs: list[Document], data: Mapping[str, Any]
) -> None:
    """Render each document with ``data`` and write it below ``path``."""
    for doc in docs:
        write_to_file(Path(path) / doc.file_name, render(doc.document, data))


def _with_version(data: Mapping[str, Any]) -> dict[str, Any]:
    return {**data, "asml_version": ASML_VERSION}


def _table(value: Any, where: str) -> dict:
    if not isinstance(value, dict):
        raise ValueError(f"{where}: expected a table")
    return value


def _string(table: dict, key: str, where: str) -> str:
    if key not in table:
        raise ValueError(f"{where}: missing field `{key}`")
    value = table[key]
    if not isinstance(value, str):
        raise ValueError(f"{where}.{key}: expected a string")
    return value


def _field(table: dict, key: str, where: str) -> dict:
    if key not in table:
        raise ValueError(f"{where}: missing field `{key}`")
    return _table(table[key], f"{where}.{key}")


def _load_toml(text: str, file_name: str) -> dict:
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"could not parse {file_name}: {exc}") from exc


@dataclass(frozen=True)
class ProjectInfo:
    name: str


@dataclass(frozen=True)
class ServiceEntry:
    name: str


@dataclass(frozen=True)
class ProjectManifest:
    """The project's ``assemblylift.toml``."""

    project: ProjectInfo
    services: dict[str, ServiceEntry] = field(default_factory=dict)

    @classmethod
    def file_names(cls) -> list[Document]:
        return [
            Document("assemblylift.toml", _ASSEMBLYLIFT_TOML),
            Document(".gitignore", _ROOT_GITIGNORE),
        ]

    @classmethod
    def from_toml(cls, text: str) -> ProjectManifest:
        name = "assemblylift.toml"
        doc = _load_toml(text, name)
        try:
            project = _field(doc, "project", name)
            services = _field(doc, "services", name)
            return cls(
                project=ProjectInfo(_string(project, "name", "project")),
                services={
                    service_id: ServiceEntry(
                        _string(
                            _table(entry, f"services.{service_id}"),
                            "name",
                            f"services.{service_id}",
                        )
                    )
                    for service_id, entry in services.items()
                },
            )
        except ValueError as exc:
            raise ValueError(f"could not parse {name}: {exc}") from exc

    @classmethod
    def read(cls, path: str | PathLike) -> ProjectManifest:
        manifest_path = Path(path) / cls.file_names()[0].file_name
        return cls.from_toml(manifest_path.read_text(encoding="utf-8"))

    @classmethod
    def write(cls, path: str | PathLike, data: Mapping[str, Any]) -> None:
        write_documents(path, cls.file_names(), _with_version(data))


@dataclass(frozen=True)
class ServiceInfo:
    name: str


@dataclass(frozen=True)
class HttpFunction:
    verb: str
    path: str


@dataclass(frozen=True)
class Function:
    name: str
    handler_name: str
    http: HttpFunction | None = None


@dataclass(frozen=True)
class Api:
    name: str
    functions: dict[str, Function] = field(default_factory=dict)


@dataclass(frozen=True)
class Dependency:
    """An IO module dependency; ``source`` holds the manifest's ``from``."""

    source: str
    version: str
    dependency_type: str


@dataclass(frozen=True)
class Iomod:
    dependencies: dict[str, Dependency] = field(default_factory=dict)


def _parse_function(table: dict, where: str) -> Function:
    http = None
    if "http" in table:
        http_table = _table(table["http"], f"{where}.http")
        http = HttpFunction(
            verb=_string(http_table, "verb", f"{where}.http"),
            path=_string(http_table, "path", f"{where}.http"),
        )
    return Function(
        name=_string(table, "name", where),
        handler_name=_string(table, "handler_name", where),
        http=http,
    )


def _parse_dependency(table: dict, where: str) -> Dependency:
    key = "dependency_type" if "dependency_type" in table else "type"
    if key not in table:
        raise ValueError(f"{where}: missing field `dependency_type`")
    return Dependency(
        source=_string(table, "from", where),
        version=_string(table, "version", where),
        dependency_type=_string(table, key, where),
    )


@dataclass(frozen=True)
class ServiceManifest:
    """A service's ``service.toml``."""

    service: ServiceInfo
    api: Api
    iomod: Iomod | None = None

    @classmethod
    def file_names(cls) -> list[Document]:
        return [Document("service.toml", _SERVICE_TOML)]

    @classmethod
    def from_toml(cls, text: str) -> ServiceManifest:
        name = "service.toml"
        doc = _load_toml(text, name)
        try:
            service = _field(doc, "service", name)
            api = _field(doc, "api", name)
            functions = _field(api, "functions", "api")
            iomod = None
            if "iomod" in doc:
                iomod_table = _table(doc["iomod"], "iomod")
                dependencies = _field(iomod_table, "dependencies", "iomod")
                iomod = Iomod(
                    {
                        dep_id: _parse_dependency(
                            _table(dep, f"iomod.dependencies.{dep_id}"),
                            f"iomod.dependencies.{dep_id}",
                        )
                        for dep_id, dep in dependencies.items()
                    }
                )
            return cls(
                service=ServiceInfo(_string(service, "name", "service")),
                api=Api(
                    name=_string(api, "name", "api"),
                    functions={
                        fn_id: _parse_function(
                            _table(fn, f"api.functions.{fn_id}"),
                            f"api.functions.{fn_id}",
                        )
                        for fn_id, fn in functions.items()
                    },
                ),
                iomod=iomod,
            )
        except ValueError as exc:
            raise ValueError(f"could not parse {name}: {exc}") from exc

    @classmethod
    def read(cls, path: str | PathLike) -> ServiceManifest:
        manifest_path = Path(path) / cls.file_names()[0].file_name
        return cls.from_toml(manifest_path.read_text(encoding="utf-8"))

    @classmethod
    def write(cls, path: str | PathLike, data: Mapping[str, Any]) -> None:
        write_documents(path, cls.file_names(), _with_version(data))


def rust_function_documents() -> list[Document]:
    """The files that make up a new Rust function."""
    return [
        Document("Cargo.toml", _FUNCTION_CARGO_TOML),
        Document(".cargo/config", _FUNCTION_CARGO_CONFIG),
        Document("src/lib.rs", _FUNCTION_LIB_RS),
        Document(".gitignore", _FUNCTION_GITIGNORE),
    ]


def write_rust_function(path: str | PathLike, data: Mapping[str, Any]) -> None:
    """Write a new Rust function's files below ``path``."""
    write_documents(path, rust_function_documents(), _with_version(data))