from setuptools import setup, find_packages

setup(
    name="couchkit",
    version="0.1.0",
    description="CouchDB cluster lifecycle management: topology-driven replication and rolling databases",

    package_dir={"": "src"},
    packages=find_packages(where="src"),

    install_requires=[
        "httpx>=0.25.0",
        "pydantic>=2.0.0",
        "structlog>=23.1.0",
        "fastapi>=0.103.0",
        "uvicorn>=0.23.0",
        "click>=8.1.0",
        "pyyaml>=6.0",
        "prometheus-client>=0.16.0",
    ],

    extras_require={
        "dev": [
            "pytest>=7.3.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "black>=23.3.0",
            "mypy>=1.3.0",
            "ruff>=0.0.270",
        ],
    },

    entry_points={
        "console_scripts": [
            "couchkit=couchkit.cli.main:cli",
        ],
    },

    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "Programming Language :: Python :: 3.11",
    ],
)
