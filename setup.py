"""Setup script for the bizflow package."""

from setuptools import setup, find_packages

setup(
    name="bizflow",
    version="0.1.0",
    packages=find_packages(exclude=("tests", "tests.*")),
    package_data={"bizflow": ["data/*.json", "data/*.yaml"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "structlog>=24.1",
        "prometheus-client>=0.19",
        "httpx>=0.26",
        "tenacity>=8.2",
        "langchain-core>=0.2",
        "langchain-ollama>=0.1",
        "python-dotenv>=1.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "pytest-httpx>=0.30",
        ],
    },
    description="bizflow - Questionnaire-driven multi-agent business planning engine",
    author="bizflow Team",
)
