"""Setup configuration for the Fabric community Discord bot."""

from setuptools import setup, find_packages

setup(
    name="fabricbot",
    version="0.1.0",
    description="A Discord bot that announces Minecraft versions and expires temporary infractions",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "aiohttp>=3.9",
        "aiosqlite>=0.20",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "fabricbot=fabricbot.main:main",
        ],
    },
)
