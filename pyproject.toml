[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tinyfs"
version = "0.1.0"
description = "A small Unix-style file system in memory: image builder, block cache, redo log, inodes, directories and simple tools"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "inode", "journaling", "disk-image", "buffer-cache", "unix"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tinyfs-mkfs = "tinyfs.mkfs:main"
tinyfs-grep = "tinyfs.grep:main"

[tool.hatch.build.targets.wheel]
packages = ["tinyfs"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
