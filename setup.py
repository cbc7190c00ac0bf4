from setuptools import setup, find_packages

# Use find_packages to automatically discover all packages
packages = find_packages(include=["ddmfit", "ddmfit.*"])

setup(
    name="ddm-fitters",
    version="0.1.0",
    packages=packages,
    package_data={
        "ddmfit": ["cli/*.yaml"],
    },
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.25",
        "pandas",
        "scipy",
        "tqdm",
        "pyyaml",
        "typer",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "ddmfit=ddmfit.cli.main:app",
        ],
    },
)
