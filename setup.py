"""
clusterwait - setup
Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from setuptools import find_packages, setup

setup(
    name="clusterwait",
    version="0.1.0",
    description="Wait until a Kafka cluster has the expected number of ready brokers",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "aiokafka>=0.10.0",
        "confluent-kafka>=2.4.0",
        "isodate>=0.6.1",
        "pydantic>=2.5",
        "pydantic-settings>=2.2",
        "typing-extensions>=4.6",
    ],
    extras_require={
        "systemd-logging": ["systemd-python"],
        "pytest": ["pytest>=7.0"],
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "clusterwait = clusterwait.cli:main",
        ],
    },
)
