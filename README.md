# asml

`asml` creates, builds and deploys serverless applications that run on AWS
Lambda. A project is made of services, and each service holds functions. The
infrastructure for all of it is generated as Terraform configuration.

## Installing

```
pip install .
```

Building functions needs `cargo` on your `PATH`. The first time a project is
initialised or cast, a Terraform 0.12.26 binary is downloaded into
`.asml/bin/terraform` inside the project. Only Linux and macOS (amd64) builds
of Terraform are fetched.

## Commands

Create a new project in `./<name>` with a default service (`my-service`) and
function (`my-function`):

```
asml init --name my-project
```

The language defaults to `rust` and can be given explicitly with
`--lang rust`. No other language is accepted.

From anywhere inside a project, add a service or a function. The project is
found by searching below the current directory for `assemblylift.toml`:

```
asml make service billing
asml make function billing.charge
```

The following commands must be run from the project root.

Build every function and package the artifacts, then run `terraform init` and
`terraform plan`, saving the plan to `net/plan`:

```
asml cast
```

`cast` downloads the runtime archive into `.asml/runtime/bootstrap.zip`, runs
`cargo build --release --target wasm32-unknown-unknown` for each function,
zips each `.wasm` file under `net/services/<service>/<function>/`, zips any
IO module dependencies into `.asml/runtime/<service>.zip`, and writes
`net/main.tf`, `service.tf` and `function.tf` files.

Run `terraform init` and apply the saved plan (`sync` is an alias):

```
asml bind
```

Tear down everything that `bind` created (`terraform destroy`):

```
asml burn
```

`asml --version` prints the version. On failure a command prints
`asml: error: ...` and exits with status 1.

## Project layout

```
my-project/
    assemblylift.toml          project manifest
    .gitignore
    services/
        my-service/
            service.toml       service manifest
            my-function/       function source (Cargo.toml, src/lib.rs, ...)
    net/                       generated Terraform and build artifacts
    .asml/                     downloaded runtime and Terraform binary
```

`assemblylift.toml` names the project and lists its services:

```
[project]
name = "my-project"
version = "0.1.0"

[services]
default = { name = "my-service" }
```

`service.toml` describes the service's API functions, their optional HTTP
routes, and any IO module dependencies packaged as a Lambda layer:

```
[service]
name = "my-service"
version = ""

[api]
name = "my-service-api"

[api.functions.my-function]
name = "my-function"
handler_name = "handler"
http = { verb = "GET", path = "/hello" }

[iomod.dependencies.my-iomod]
from = "./path/to/iomod-binary"
version = "0.1.0"
type = "file"
```

Only `type = "file"` dependencies are supported.

## Library use

The modules can also be used from Python:

- `asml.bom` reads and writes the manifests (`ProjectManifest`,
  `ServiceManifest`, each with `from_toml`, `read` and `write`) and writes new
  Rust functions (`write_rust_function`).
- `asml.projectfs` models the project directory (`Project`, `ServiceDir`) and
  finds a project with `locate_asml_manifest`.
- `asml.terraform` renders the Terraform files (`render_root`,
  `render_function`, `render_service`), writes them (`write_root`,
  `write_function`, `write_service`), fetches the binary (`fetch`) and runs it
  (`init`, `plan`, `apply`, `destroy`).
- `asml.artifact` builds uncompressed zip artifacts (`zip_files`) and extracts
  the Terraform binary (`unzip_to`).
- `asml.templating` is the small Handlebars-style renderer used for all
  generated files (`render`).
- `asml.lambda_guest` provides the API Gateway event and response types
  (`ApiGatewayEvent`, `ApiGatewayResponse`, `read_event`, `http_ok`,
  `http_error`).
- `asml.lambda_runtime` is a client for the Lambda runtime API
  (`AwsLambdaRuntime.get_next_event`, `AwsLambdaRuntime.respond`).
- `asml.iomemory` tracks IO call ids and places their responses in 64-byte
  blocks of a 32 KiB buffer (`IoMemory`, `Threader`).

## What it does not do

The package does not execute WebAssembly functions: there is no Lambda
bootstrap host that loads a `.wasm` module and calls its handler, and no IO
module registry server. `Threader` takes a plain Python `dispatch` callable in
place of the registry, and the runtime binary that `cast` deploys is
downloaded, not built here.