"""
SPDX-License-Identifier: Apache-2.0
"""

import setuptools

if __name__ == "__main__":
    setuptools.setup(
        name="cmdbauth",
        version="0.1.0",
        description="Projection of configuration management entities onto policy engine resources",
        python_requires=">=3.9",
        packages=setuptools.find_packages(include=["cmdbauth", "cmdbauth.*"]),
        install_requires=["PyYAML>=5.4"],
        extras_require={"test": ["pytest>=7.0"]},
        data_files=[("share/cmdbauth", ["config/auth.conf", "config/logging.conf", "config/grants.yaml"])],
    )
