[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tinylog"
version = "0.1.0"
description = "A small replicated commit log: Raft consensus over MQTT-carried JSON-RPC with an in-memory segmented log"
requires-python = ">=3.10"
dependencies = [
    "paho-mqtt",
]
keywords = ["raft", "consensus", "mqtt", "commit-log", "rpc", "distributed"]
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
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
tinylog = "tinylog.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tinylog"]

[tool.pytest.ini_options]
addopts = "-ra"
