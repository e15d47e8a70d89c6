from setuptools import setup, find_packages

setup(
    name="metaform",
    version="0.1.0",
    description="Reactive form-state engine: field trees, validation and snapshots",
    author="Metafor Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[],
    extras_require={
        "test": [
            "pytest",
        ],
    },
)
