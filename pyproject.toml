[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "capiop"
version = "0.1.0"
description = "Manage Cluster API providers in a management cluster: delete providers, plan upgrades and find operator releases"
requires-python = ">=3.10"
dependencies = []
keywords = ["cluster-api", "kubernetes", "operator", "providers", "upgrade"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
capioperator = "capiop.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["capiop"]

[tool.pytest.ini_options]
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
