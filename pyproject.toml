[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "apigate"
version = "0.1.0"
description = "Building blocks for an API gateway: store contract, metadata service, admin API dispatch, request statistics and helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["api-gateway", "gateway", "admin-api", "lru", "metrics", "pushgateway", "rate-barrier", "http-client"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["apigate"]

[tool.pytest.ini_options]
addopts = "-ra"
