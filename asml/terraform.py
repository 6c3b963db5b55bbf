"""Terraform configuration generation and the bundled terraform binary."""

from __future__ import annotations

import json
import os
import platform
import subprocess
import urllib.request
from dataclasses import asdict, dataclass
from os import PathLike
from pathlib import Path

from asml.artifact import unzip_to
from asml.bom import ASML_VERSION
from asml.templating import render

_HEADER = "# Generated with assemblylift-cli {{asml_version}}"


def _block(opener: str, *body: str, indent: str = "  ") -> list[str]:
    """An HCL block; every non-empty body line gets ``indent``."""
    return [f"{opener} {{", *(f"{indent}{line}" if line else "" for line in body), "}"]


def _if(condition: str, body: list[str], otherwise: list[str] | None = None) -> list[str]:
    lines = ["{{#if " + condition + "}}", *body]
    if otherwise is not None:
        lines += ["{{else}}", *otherwise]
    lines.append("{{/if}}")
    return lines


def _each(collection: str, body: list[str]) -> list[str]:
    return ["{{#each " + collection + "}}", *body, "{{/each}}"]


def _variable(name: str) -> list[str]:
    return _block(f'variable "{name}"', "type = string")


def _output(name: str, value: str) -> list[str]:
    return _block(f'output "{name}"', f"value = {value}")


def _heredoc(attribute: str, document: dict) -> str:
    return f"{attribute} = <<EOF\n{json.dumps(document, indent=2)}\nEOF"


def _template(*lines: str) -> str:
    return "\n".join(lines) + "\n"


_BOOTSTRAP_ZIP = "${path.module}/../.asml/runtime/bootstrap.zip"
_SERVICE_ZIP = "${path.module}/../../../.asml/runtime/{{name}}.zip"
_FUNCTION_ZIP = "${path.module}/{{name}}.zip"

_ASSUME_ROLE_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Action": "sts:AssumeRole",
            "Principal": {"Service": "lambda.amazonaws.com"},
            "Effect": "Allow",
            "Sid": "",
        }
    ],
}

_LOGGING_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Action": [
                "logs:CreateLogGroup",
                "logs:CreateLogStream",
                "logs:PutLogEvents",
            ],
            "Resource": "arn:aws:logs:*:*:*",
            "Effect": "Allow",
        }
    ],
}

_TERRAFORM_ROOT = _template(
    _HEADER,
    "",
    *_block('provider "aws"', 'region = "{{aws_region}}"', indent="    "),
    "",
    *_block(
        'resource "aws_lambda_layer_version" "asml_runtime_layer"',
        f'filename   = "{_BOOTSTRAP_ZIP}"',
        'layer_name = "assemblylift-runtime"',
        "",
        f'source_code_hash = filebase64sha256("{_BOOTSTRAP_ZIP}")',
    ),
    "",
    *_each(
        "services",
        _block('module "{{this.name}}"', 'source = "./services/{{this.name}}"'),
    ),
    "",
    *_each(
        "functions",
        [
            *_block(
                'module "{{this.name}}"',
                'source = "./services/{{this.service}}/{{this.name}}"',
                "",
                "runtime_layer_arn = aws_lambda_layer_version.asml_runtime_layer.arn",
                *_if(
                    "this.service_has_layer",
                    ["service_layer_arn = module.{{this.service}}.service_layer_arn"],
                ),
                "",
                *_if(
                    "this.service_has_http_api",
                    [
                        "service_http_api_id    = module.{{this.service}}.http_api_id",
                        "http_api_execution_arn = module.{{this.service}}.http_api_execution_arn",
                        'http_verb = "{{this.http_verb}}"',
                        'http_path = "{{this.http_path}}"',
                    ],
                ),
            ),
            "",
        ],
    ),
    "",
)

_TERRAFORM_FUNCTION = _template(
    _HEADER,
    "",
    *_variable("runtime_layer_arn"),
    *_if("service_has_layer", _variable("service_layer_arn")),
    *_if(
        "service_has_http_api",
        [
            *_variable("service_http_api_id"),
            "",
            *_variable("http_verb"),
            "",
            *_variable("http_path"),
            "",
            *_variable("http_api_execution_arn"),
            "",
            *_block("locals", 'lambda_name = "asml_{{service}}_{{name}}_lambda"'),
            "",
            *_block(
                'resource "aws_apigatewayv2_route" "asml_{{name}}_http_route"',
                "api_id    = var.service_http_api_id",
                'route_key = "${var.http_verb} ${var.http_path}"',
                'target    = "integrations/${aws_apigatewayv2_integration.asml_{{name}}.id}"',
            ),
            "",
            *_block(
                'resource "aws_apigatewayv2_integration" "asml_{{name}}"',
                "api_id           = var.service_http_api_id",
                'integration_type = "AWS_PROXY"',
                "",
                'connection_type           = "INTERNET"',
                'integration_method        = "POST"',
                "integration_uri           = "
                "aws_lambda_function.asml_{{service}}_{{name}}_lambda.invoke_arn",
            ),
            "",
            *_block(
                'resource "aws_lambda_permission" "lambda_permission"',
                'action        = "lambda:InvokeFunction"',
                "function_name = local.lambda_name",
                'principal     = "apigateway.amazonaws.com"',
                "",
                'source_arn = "${var.http_api_execution_arn}/*"',
            ),
        ],
    ),
    "",
    *_block(
        'resource "aws_lambda_function" "asml_{{service}}_{{name}}_lambda"',
        "function_name = local.lambda_name",
        "role          = aws_iam_role.lambda_iam_role.arn",
        'runtime       = "provided"',
        'handler       = "{{name}}.{{handler_name}}"',
        f'filename      = "{_FUNCTION_ZIP}"',
        "timeout       = 5",
        "",
        *_if(
            "service_has_layer",
            ["layers = [var.runtime_layer_arn, var.service_layer_arn]"],
            ["layers = [var.runtime_layer_arn]"],
        ),
        "",
        f'source_code_hash = filebase64sha256("{_FUNCTION_ZIP}")',
        indent="    ",
    ),
    "",
    *_block(
        'resource "aws_iam_role" "lambda_iam_role"',
        "name = local.lambda_name",
        "",
        _heredoc("assume_role_policy", _ASSUME_ROLE_POLICY),
        indent="    ",
    ),
    "",
    *_block(
        'resource "aws_iam_policy" "asml_{{service}}_{{name}}_lambda_logging"',
        'name        = "asml_{{name}}_lambda_logging"',
        'path        = "/"',
        'description = "IAM policy for logging from a lambda"',
        "",
        _heredoc("policy", _LOGGING_POLICY),
    ),
    "",
    *_block(
        'resource "aws_iam_role_policy_attachment" "asml_{{name}}_lambda_logs"',
        "role       = aws_iam_role.lambda_iam_role.name",
        "policy_arn = aws_iam_policy.asml_{{service}}_{{name}}_lambda_logging.arn",
    ),
)

_TERRAFORM_SERVICE = _template(
    _HEADER,
    *_if(
        "has_layer",
        [
            *_block(
                'resource "aws_lambda_layer_version" "asml_{{name}}_service_layer"',
                f'filename   = "{_SERVICE_ZIP}"',
                'layer_name = "{{name}}-service"',
                "",
                f'source_code_hash = filebase64sha256("{_SERVICE_ZIP}")',
            ),
            "",
            *_output(
                "service_layer_arn",
                "aws_lambda_layer_version.asml_{{name}}_service_layer.arn",
            ),
        ],
    ),
    "",
    *_if(
        "has_http_api",
        [
            *_block(
                'resource "aws_apigatewayv2_api" "{{name}}_http_api"',
                'name          = "{{name}}"',
                'protocol_type = "HTTP"',
            ),
            "",
            *_block(
                'resource "aws_apigatewayv2_stage" "{{name}}_default_stage"',
                "api_id      = aws_apigatewayv2_api.{{name}}_http_api.id",
                'name        = "$default"',
                "auto_deploy = true",
            ),
            "",
            *_output("http_api_id", "aws_apigatewayv2_api.{{name}}_http_api.id"),
            "",
            *_output(
                "http_api_execution_arn",
                "aws_apigatewayv2_api.{{name}}_http_api.execution_arn",
            ),
        ],
    ),
)

_AWS_REGION = "us-east-1"

_TERRAFORM_VERSION = "0.12.26"
_RELEASES = "https://releases.hashicorp.com/terraform"

_DOWNLOAD_URLS = {
    system: f"{_RELEASES}/{_TERRAFORM_VERSION}/terraform_{_TERRAFORM_VERSION}_{system}_amd64.zip"
    for system in ("linux", "darwin")
}


@dataclass(frozen=True)
class TerraformFunction:
    name: str
    handler_name: str
    service: str
    service_has_layer: bool
    service_has_http_api: bool
    http_verb: str | None = None
    http_path: str | None = None


@dataclass(frozen=True)
class TerraformService:
    name: str
    has_layer: bool
    has_http_api: bool


def relative_binary_path() -> str:
    """Where the terraform binary lives, relative to the project root."""
    return ".asml/bin/terraform"


def download_url(system: str | None = None) -> str:
    """The terraform release archive for ``system`` (default: this machine)."""
    if system is None:
        system = platform.system()
    try:
        return _DOWNLOAD_URLS[system.lower()]
    except KeyError:
        raise ValueError(f"unsupported platform for terraform: {system}") from None


def fetch(project_path: str | PathLike) -> None:
    """Download terraform into the project unless it is already there."""
    terraform_path = Path(project_path) / relative_binary_path()
    if terraform_path.exists():
        print(f"Found terraform at {terraform_path}, skipping download...")
        return

    print(f"Extracting terraform to {terraform_path}")
    with urllib.request.urlopen(download_url()) as response:
        terraform_zip = response.read()

    terraform_path.parent.mkdir(parents=True, exist_ok=True)
    unzip_to(terraform_zip, terraform_path)
    os.chmod(terraform_path, 0o755)


def render_root(
    project_name: str,
    functions: list[TerraformFunction],
    services: list[TerraformService],
) -> str:
    """Render the project's ``main.tf``."""
    data = {
        "asml_version": ASML_VERSION,
        "aws_region": _AWS_REGION,
        "project_name": project_name,
        "functions": [asdict(function) for function in functions],
        "services": [asdict(service) for service in services],
    }
    return render(_TERRAFORM_ROOT, data)


def render_function(function: TerraformFunction) -> str:
    """Render a function's ``function.tf``."""
    data = {
        "asml_version": ASML_VERSION,
        "name": function.name,
        "handler_name": function.handler_name,
        "service": function.service,
        "service_has_layer": function.service_has_layer,
        "service_has_http_api": function.service_has_http_api,
    }
    return render(_TERRAFORM_FUNCTION, data)


def render_service(service: TerraformService) -> str:
    """Render a service's ``service.tf``."""
    data = {
        "asml_version": ASML_VERSION,
        "name": service.name,
        "has_layer": service.has_layer,
        "has_http_api": service.has_http_api,
    }
    return render(_TERRAFORM_SERVICE, data)


def _write_to_file(path: Path, contents: str) -> None:
    path.write_text(contents, encoding="utf-8")
    print(f"📄 > Wrote {path}")


def write_root(
    project_path: str | PathLike,
    project_name: str,
    functions: list[TerraformFunction],
    services: list[TerraformService],
) -> Path:
    """Write ``net/main.tf``; the ``net`` directory must already exist."""
    path = Path(project_path) / "net" / "main.tf"
    _write_to_file(path, render_root(project_name, functions, services))
    return path


def write_function(project_path: str | PathLike, function: TerraformFunction) -> Path:
    """Write the function's ``function.tf``; its directory must already exist."""
    path = (
        Path(project_path)
        / "net"
        / "services"
        / function.service
        / function.name
        / "function.tf"
    )
    _write_to_file(path, render_function(function))
    return path


def write_service(project_path: str | PathLike, service: TerraformService) -> Path:
    """Write the service's ``service.tf``, creating its directory."""
    directory = Path(project_path) / "net" / "services" / service.name
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "service.tf"
    _write_to_file(path, render_service(service))
    return path


def _terraform(*args: str) -> int:
    return subprocess.run([relative_binary_path(), *args]).returncode


def init() -> int:
    """Run ``terraform init ./net``."""
    return _terraform("init", "./net")


def plan() -> int:
    """Run ``terraform plan`` into ``./net/plan``."""
    return _terraform("plan", "-out=./net/plan", "./net")


def apply() -> int:
    """Apply the saved plan in ``./net/plan``."""
    return _terraform("apply", "./net/plan")


def destroy() -> int:
    """Run ``terraform destroy ./net``."""
    return _terraform("destroy", "./net")