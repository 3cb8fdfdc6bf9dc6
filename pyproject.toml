[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nanomqtt"
version = "0.1.0"
description = "Tooling around an MQTT broker: topic access control, a JSON configuration API, hot reload over a control socket and a start/stop/reload command line"
requires-python = ">=3.10"
dependencies = []
keywords = ["mqtt", "broker", "acl", "configuration", "reload", "iot"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
nanomqtt = "nanomqtt.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["nanomqtt"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
