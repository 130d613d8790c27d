[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "keyremapd"
version = "0.1.0"
description = "Per-application keyboard and mouse remapping daemon for Linux evdev devices"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["evdev", "uinput", "remap", "keyboard", "mouse", "macro", "hotkeys", "layers"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Utilities",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
keyremapd = "keyremapd.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["keyremapd"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
