[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hookscan"
version = "0.1.0"
description = "Scan x86 machine-code images for calls, jumps, function entries and byte patterns"
requires-python = ">=3.10"
dependencies = []
keywords = ["x86", "disassembler", "machine code", "pattern search", "hooking", "binary analysis"]
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
    "Topic :: Software Development :: Disassemblers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["hookscan"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
