[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "socialspace"
version = "0.1.0"
description = "A small social network server: accounts, friends, posts, groups and end-to-end encrypted chat over a JSON API and WebSocket, stored in SQLite."
requires-python = ">=3.10"
keywords = ["social", "http", "api", "websocket", "chat", "sqlite", "jwt", "starlette"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Communications :: Chat",
]
dependencies = [
    "starlette",
    "uvicorn",
    "pyjwt",
    "bcrypt",
]

[project.optional-dependencies]
test = [
    "pytest",
    "httpx",
]

[project.scripts]
socialspace = "socialspace.app:main"

[tool.hatch.build.targets.wheel]
packages = ["socialspace"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
