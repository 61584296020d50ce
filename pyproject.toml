[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mcpkit"
version = "0.1.0"
description = "Small Model Context Protocol servers over stdio: a greeting server, a workspace file server and a bash command runner"
requires-python = ">=3.10"
dependencies = []
keywords = ["mcp", "model-context-protocol", "json-rpc", "stdio", "tools", "glob", "gitignore"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[project.scripts]
mcp-hello = "mcpkit.hello:main"
mcp-edit = "mcpkit.edit_cli:main"
mcp-shell = "mcpkit.shell_cli:main"

[tool.hatch.build.targets.wheel]
packages = ["mcpkit"]

[tool.pytest.ini_options]
addopts = "-ra"
