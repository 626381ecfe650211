from setuptools import setup, find_packages

setup(
    name="techwire",
    version="0.4.0",
    description="Tech news aggregator with cached AI summaries, images and provider fallback",
    author="techwire contributors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "requests>=2.31.0",
        "beautifulsoup4>=4.12.0",
        "feedparser>=6.0.0",
        "python-dateutil>=2.8.0",
        "rich>=13.0.0",
        "pyyaml>=6.0.0",
        "pydantic>=2.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "techwire=techwire.cli:main",
        ],
    },
    python_requires=">=3.9",
)
