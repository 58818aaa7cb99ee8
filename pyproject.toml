[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "blogrss"
version = "0.1.0"
description = "A small JSON web service that aggregates RSS feeds and serves the latest posts to the users who follow them."
requires-python = ">=3.10"
keywords = ["rss", "feed", "aggregator", "blog", "flask", "api", "sqlite"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: News/Diary",
]
dependencies = [
    "flask",
    "requests",
    "python-dotenv",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
blogrss = "blogrss.app:main"

[tool.hatch.build.targets.wheel]
packages = ["blogrss"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
