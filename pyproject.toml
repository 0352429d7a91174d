[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mcpx"
version = "0.1.0"
description = "Model Context Protocol servers for filesystem access, Jupyter notebooks and PowerShell command execution"
requires-python = ">=3.10"
dependencies = []
keywords = ["mcp", "model-context-protocol", "json-rpc", "filesystem", "jupyter", "powershell"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mcpx-filesystem = "mcpx.fs_server:main"
mcpx-jupyter = "mcpx.jupyter:main"
mcpx-powershell = "mcpx.ps_server:main"

[tool.hatch.build.targets.wheel]
packages = ["mcpx"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
