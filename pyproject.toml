[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "webserv"
version = "0.1.0"
description = "A small HTTP/1.1 server configured by an nginx-style configuration file"
requires-python = ">=3.10"
dependencies = []
keywords = ["http", "web server", "nginx", "configuration", "static files"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
webserv = "webserv.server:main"

[tool.hatch.build.targets.wheel]
packages = ["webserv"]

[tool.pytest.ini_options]
addopts = "-ra"
