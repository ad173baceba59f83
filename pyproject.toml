[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kvikpy"
version = "0.1.0"
description = "Lightweight publish/subscribe client node for IoT networks, with pluggable transports and wildcard topic matching"
requires-python = ">=3.10"
dependencies = []
keywords = ["iot", "pubsub", "gateway", "messaging", "wildcard", "topics", "chacha20"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["kvikpy"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
