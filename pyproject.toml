[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chronoflow"
version = "0.1.0"
description = "Watch a product table on a web page and notify Telegram subscribers about added, changed and removed products."
requires-python = ">=3.10"
keywords = ["telegram", "bot", "scraper", "monitoring", "sqlite", "notifications"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Communications :: Chat",
]
dependencies = [
    "requests",
    "beautifulsoup4",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
chronoflow = "chronoflow.app:main"

[tool.hatch.build.targets.wheel]
packages = ["chronoflow"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
