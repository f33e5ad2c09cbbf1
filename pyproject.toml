[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tapcore"
version = "0.1.0"
description = "Signed payment receipts, receipt checks and receipt aggregate vouchers, with EIP-712 hashing and secp256k1 signatures."
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = ["payments", "receipts", "eip712", "ecdsa", "secp256k1", "voucher", "escrow"]
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
    "Framework :: AsyncIO",
    "Topic :: Office/Business :: Financial",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["tapcore"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
