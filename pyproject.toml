[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "erokit"
version = "0.1.0"
description = "Pure-Python building blocks for EROFS image tooling: hashes, UUIDs, tar header parsing, a work queue and a size-bounded raw DEFLATE encoder"
requires-python = ">=3.10"
dependencies = []
keywords = ["erofs", "filesystem", "deflate", "tar", "pax", "xxhash", "sha256", "uuid"]
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
    "Topic :: System :: Filesystems",
    "Topic :: System :: Archiving :: Compression",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["erokit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
