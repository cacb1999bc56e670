[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "teachos"
version = "0.1.0"
description = "A small in-memory teaching operating-system core: on-disk file system, buffer cache, journal, console, keyboard decoding and user tools"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "filesystem",
    "operating-system",
    "teaching",
    "journal",
    "buffer-cache",
    "disk-image",
    "grep",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Education",
    "Topic :: System :: Operating System",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
teachos-grep = "teachos.grep:main"
teachos-mkfs = "teachos.mkfs:main"

[tool.hatch.build.targets.wheel]
packages = ["teachos"]

[tool.hatch.build.targets.sdist]
include = ["teachos", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
