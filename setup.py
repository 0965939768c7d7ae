import setuptools
from setuptools import find_packages

with open("readme.md", "r") as fh:
    long_description = fh.read()


vars2find = ["__author__", "__version__", "__url__"]
vars2readme = {}
with open("./datavault/__init__.py") as f:
    for line in f.readlines():
        for v in vars2find:
            if line.startswith(v):
                line = line.replace(" ", "").replace('"', "").replace("'", "").strip()
                vars2readme[v] = line.split("=", 1)[1]

# Core dependencies
core_deps = [
    "pydantic>=2.0",
    "tenacity",
    "neo4j>=5.0",
    "aioboto3",
    "redis[hiredis]>=5.0.0",
]

api_deps = [
    "fastapi>=0.100.0",
    "pydantic-settings>=2.0",
    "uvicorn",
]

setuptools.setup(
    name="datavault",
    url=vars2readme["__url__"],
    version=vars2readme["__version__"],
    author=vars2readme["__author__"],
    description="Backup and two-phase restore for graph, vector and relational stores",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["datavault", "datavault.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=core_deps,
    extras_require={
        "qdrant": ["qdrant-client>=1.7.0", "httpx"],
        "postgres": ["sqlalchemy[asyncio]>=2.0", "asyncpg"],
        "api": api_deps,
        "all": [
            "qdrant-client>=1.7.0",
            "httpx",
            "sqlalchemy[asyncio]>=2.0",
            "asyncpg",
            *api_deps,
        ],
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
            "qdrant-client>=1.7.0",
            "sqlalchemy[asyncio]>=2.0",
            "asyncpg",
            *api_deps,
        ],
    },
)
