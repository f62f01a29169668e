[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wordvm"
version = "0.1.0"
description = "A small stack-based virtual machine that runs 32-bit word bytecode images"
requires-python = ">=3.10"
dependencies = []
keywords = ["virtual machine", "bytecode", "stack machine", "interpreter", "emulator"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Topic :: Software Development :: Interpreters",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
wordvm = "wordvm.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["wordvm"]

[tool.pytest.ini_options]
addopts = "-ra"
