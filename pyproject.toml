[build-system]
requires = ["setuptools>=61.0"]
build-backend = "setuptools.build_meta"

[project]
name = "coremodel"
version = "0.1.0"
description = "Building blocks for a cycle-level out-of-order processor core model: topology, dispatchers, execution pipes and data cache"
requires-python = ">=3.10"
dependencies = []
keywords = ["simulation", "microarchitecture", "cpu", "performance-model", "cache", "pipeline"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.setuptools.packages.find]
include = ["coremodel*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
