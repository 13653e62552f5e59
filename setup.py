"""Setup configuration for Crowncord Discord Bot."""

from setuptools import setup, find_packages

setup(
    name="crowncord",
    version="0.1.0",
    description="A Discord bot that rotates a crown role to the most active member on a schedule",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.5",
        "aiosqlite>=0.19",
        "PyYAML>=6.0",
        "prompt_toolkit>=3.0",
        "python-dotenv>=1.0",
        "croniter>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "crowncord=crowncord.main:main",
        ],
    },
)
