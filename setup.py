from setuptools import setup, find_packages

setup(
    name="wfconvert",
    version="0.1.0",
    description="Convert WDL workflows to CWL through a typed intermediate representation",
    packages=find_packages(include=["wfconvert", "wfconvert.*"]),
    package_data={"wfconvert": ["grammar.lark"]},
    install_requires=[
        "lark",
        "pydantic>=2.0",
        "networkx>=3.0",
        "loguru>=0.7",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "wfconvert=wfconvert.cli:main",
        ],
    },
    python_requires=">=3.9",
)
