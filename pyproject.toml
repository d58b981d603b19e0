[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "npdetect"
version = "0.1.0"
description = "Node problem detection building blocks: plugin result handling, node condition sync, exporter registry and detector options"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "monitoring",
    "node",
    "health",
    "conditions",
    "plugins",
    "exporters",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["npdetect"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
