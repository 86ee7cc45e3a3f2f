[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "uki"
version = "0.3.2"
description = "A simple UDP and TCP packet forwarder with optional XOR obfuscation and UDP-over-TCP tunnelling."
requires-python = ">=3.11"
dependencies = []
keywords = ["encryption", "udp", "tcp", "udp-over-tcp", "tunnel", "forwarder", "asyncio"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[project.scripts]
uki = "uki.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["uki"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
