[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cyberkit"
version = "0.1.0"
description = "In-memory state machine for bandwidth metering, stake indexing and scheduled contract calls on a knowledge-graph chain"
requires-python = ">=3.10"
dependencies = []
keywords = ["blockchain", "bandwidth", "staking", "scheduler", "state-machine", "bech32"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cyberkit"]

[tool.pytest.ini_options]
addopts = "-ra"
