[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cubeconnect"
version = "0.2.0"
description = "Local WebSocket proxy that exposes Bluetooth Low Energy devices to web applications"
requires-python = ">=3.10"
keywords = ["bluetooth", "ble", "websocket", "proxy", "smart-cube", "gatt"]
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
    "Framework :: AsyncIO",
    "Topic :: Communications",
    "Topic :: Internet :: Proxy Servers",
]
dependencies = [
    "websockets",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "websockets",
]

[tool.hatch.build.targets.wheel]
packages = ["cubeconnect"]

[tool.hatch.build.targets.sdist]
include = ["cubeconnect", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
