[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mitiru"
version = "0.7.0"
description = "Project tool for MitiruEngine games: manifest handling, engine cache, binding and determinism lint, inspectors and subsystem launchers"
requires-python = ">=3.11"
dependencies = []
keywords = ["mitiru", "game-engine", "cli", "build-tool", "lint", "gamedev"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment",
    "Topic :: Software Development :: Build Tools",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mitiru = "mitiru.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["mitiru"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
