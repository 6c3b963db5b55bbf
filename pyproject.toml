[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "asml"
version = "0.2.0"
description = "Command-line tool for creating, building and deploying serverless applications on AWS Lambda with Terraform"
requires-python = ">=3.11"
dependencies = []
keywords = ["serverless", "aws-lambda", "terraform", "webassembly", "cli", "scaffolding"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
asml = "asml.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["asml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
