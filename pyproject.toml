[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "trueledger"
version = "0.1.0"
description = "Item-ownership ledger services: SQLite storage, transfer codes, contract transactions and event indexing"
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = ["ownership", "ledger", "ethereum", "keccak", "json-rpc", "sqlite"]
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
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["trueledger"]

[tool.pytest.ini_options]
addopts = "-ra"
