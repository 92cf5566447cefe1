[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lxdash"
version = "0.1.0"
description = "Dashboard support libraries: a TLSF memory allocator model, FAT-style file access helpers and a background JPEG decode queue"
requires-python = ">=3.10"
keywords = ["tlsf", "allocator", "jpeg", "thumbnail", "fat", "file-io", "dashboard"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
]
dependencies = [
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["lxdash"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
