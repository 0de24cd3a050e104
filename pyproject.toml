[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "svcutils"
version = "2.0.0"
description = "Utilities for backend services: environment lookup, logging, caching, time helpers, sign-in, JWT/JWK, WSGI middleware, request ids and Datadog log forwarding."
requires-python = ">=3.10"
keywords = [
    "utilities",
    "logging",
    "cache",
    "jwt",
    "jwk",
    "datadog",
    "cloudwatch",
    "wsgi",
    "middleware",
    "request-id",
]
classifiers = [
    "Development Status :: 5 - Production/Stable",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Middleware",
    "Topic :: System :: Logging",
]
dependencies = [
    "pyjwt>=2.8",
    "cryptography>=41",
    "requests>=2.31",
    "cachetools>=5.3",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "responses>=0.24",
]

[tool.hatch.build.targets.wheel]
packages = ["svcutils"]

[tool.hatch.build.targets.sdist]
include = ["svcutils", "tests"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
