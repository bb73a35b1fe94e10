from setuptools import setup, find_namespace_packages

from src import __version__

setup(
    name="nostr-media-observatory",
    version=__version__,
    description="Time-navigable media feed harvested from Nostr relays",
    author="Your Name",
    packages=find_namespace_packages(include=["src", "src.*", "cli", "cli.*"]),
    install_requires=[
        "click>=8.1.7",
        "fastapi>=0.109.0",
        "httpx>=0.25.2",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-dateutil>=2.8.2",
        "python-dotenv>=1.0.0",
        "rich>=13.7.0",
        "uvicorn[standard]>=0.27.0",
        "websockets>=12.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "observatory-cli=cli.main:cli",
            "observatory=src.main:main",
        ],
    },
    python_requires=">=3.10",
)
