"""
Setup file.
"""

import os

from setuptools import find_packages, setup

NAME = "sketchbuild"
URL = "https://github.com/sketchbuild/sketchbuild"
KEYWORDS = "embedded arduino arduino-cli compiler firmware upload avrdude esp32 microcontroller"
HERE = os.path.dirname(os.path.abspath(__file__))


def get_version() -> str:
    with open(os.path.join(HERE, "src", NAME, "__init__.py"), encoding="utf-8") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"')
    raise RuntimeError("Unable to find version string")


if __name__ == "__main__":
    setup(
        name=NAME,
        version=get_version(),
        description="Compile and upload Arduino sketches through arduino-cli",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.9",
        package_dir={"": "src"},
        packages=find_packages("src"),
        install_requires=[
            "psutil",
        ],
        extras_require={
            "test": ["pytest"],
        },
        entry_points={
            "console_scripts": [
                "sketchbuild=sketchbuild.cli:main",
            ],
        },
        include_package_data=True)
