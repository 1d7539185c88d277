"""connectauth setup."""

import os

from setuptools import setup, find_packages

long_description = ""
if os.path.exists("README.md"):
    with open("README.md", "r", encoding="utf-8") as f:
        long_description = f.read()

setup(
    name="connectauth",
    version="0.1.0",
    package_dir={"": "backend"},
    packages=find_packages("backend", exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi>=0.110.0",
        "httpx>=0.27.0",
        "PyJWT[crypto]>=2.8.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "aiosqlite>=0.19.0",
        "slowapi>=0.1.9",
    ],
    extras_require={
        "server": [
            "uvicorn>=0.27.0",
        ],
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    python_requires=">=3.10",
    author="connectauth",
    author_email="",
    description="OAuth login, signup and account linking for Apple, Google and GitHub",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Framework :: FastAPI",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP :: Session",
    ],
    keywords="oauth, oidc, sign in with apple, google, github, account linking",
)
