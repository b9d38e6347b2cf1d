"""Setup configuration for modpolicy."""

from setuptools import setup, find_packages

setup(
    name="modpolicy",
    version="0.0.1",
    description="Reconciles Matrix moderation policy lists into a live, deduplicated rule set",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "httpx>=0.27",
        "prompt_toolkit>=3.0",
        "python-dotenv>=1.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0,<9",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "modpolicy=modpolicy.main:main",
        ],
    },
)
