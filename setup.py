# setup.py
from setuptools import setup, find_namespace_packages

setup(
    name="bundlepack",
    version="0.1.0",
    description="Dependency resolution and reproducible artifact packaging for bundled Node.js functions",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["bundlepack*"]),
    python_requires=">=3.11",
    install_requires=[
        "PyYAML",
        "semantic_version",
        "tree-sitter>=0.23",
        "tree-sitter-javascript>=0.23",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
