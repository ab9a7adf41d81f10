[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "blockledger"
version = "0.2.0"
description = "A small append-only block ledger of account balances with a peer-syncing HTTP node"
requires-python = ">=3.10"
dependencies = []
keywords = ["ledger", "blockchain", "balances", "transactions", "peer-to-peer"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Accounting",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
blockledger = "blockledger.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["blockledger"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
