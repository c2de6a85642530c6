[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "execbox"
version = "0.1.0"
description = "Run programs under resource limits with file copy-in, output collection, pipes and a worker queue."
requires-python = ">=3.10"
keywords = ["sandbox", "judge", "execution", "resource-limits", "worker"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["execbox"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
