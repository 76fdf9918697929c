[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tcpstatetrack"
version = "0.1.0"
description = "Track TCP connection states and reassemble payload streams from pcap captures"
requires-python = ">=3.10"
dependencies = []
keywords = ["tcp", "pcap", "state machine", "reassembly", "network monitoring"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tcpstatetrack = "tcpstatetrack.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tcpstatetrack"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
