from setuptools import setup, find_packages

setup(
    name="escrow-engine",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "loguru>=0.7.0",
        "pydantic>=2.0.0",
        "Click>=8.0",
        "aiohttp>=3.8.0",
        "motor>=3.3.0",
        "pymongo>=4.5.0"
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0"
        ]
    },
    entry_points={
        "console_scripts": [
            "escrow-engine=escrow_engine.main:cli",
        ],
    },
    python_requires=">=3.9",
    author="Escrow Engine Team",
    description="Custodial escrow settlement for staked two-player matches",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Office/Business :: Financial",
        "Programming Language :: Python :: 3",
    ],
)
