"""Setup configuration for dailyctl."""

from setuptools import setup, find_packages

setup(
    name="dailyctl",
    version="1.0.0",
    description="Runs programs once a day with live output capture and retries",
    author="Your Name",
    packages=find_packages(include=["dailyctl", "dailyctl.*"]),
    install_requires=[
        "click>=8.1.7",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "dailyctl=dailyctl.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
