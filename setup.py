"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/zackees/boardmgr"
KEYWORDS = "embedded arduino board-manager platform toolchain library package-index"
HERE = os.path.dirname(os.path.abspath(__file__))

INSTALL_REQUIRES = [
    "requests>=2.28",
    "tqdm>=4.64",
    "psutil>=5.9",
    "pyserial>=3.5",
    "python-gnupg>=0.5",
    "packaging>=21.0",
]

EXTRAS_REQUIRE = {
    "test": ["pytest>=7.0"],
}


if __name__ == "__main__":
    setup(
        name="boardmgr",
        version="0.1.0",
        description="Board support package, tool and library manager for embedded toolchains",
        maintainer="Zachary Vorhies",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.8",
        package_dir={"": "src"},
        packages=find_packages(where="src", include=["boardmgr", "boardmgr.*"]),
        install_requires=INSTALL_REQUIRES,
        extras_require=EXTRAS_REQUIRE,
        include_package_data=True,
    )
