[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "runwatch"
version = "0.1.0"
description = "Archive pipeline and task runs into a results store and clean up completed runs"
requires-python = ">=3.10"
dependencies = []
keywords = ["pipelines", "ci", "reconciler", "results", "controller"]
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
    "Topic :: Software Development :: Build Tools",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["runwatch"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
