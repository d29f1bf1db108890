import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

with open('VERSION', 'r') as fh:
    VERSION = fh.read().strip()

setuptools.setup(
    name="goldinstall",
    version=VERSION,
    description="Unattended Arch Linux provisioning for golden image builds",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=['tests', 'tests.*']),
    classifiers=[
        "Programming Language :: Python :: 3.11",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Operating System :: POSIX :: Linux",
    ],
    python_requires='>=3.11',
    install_requires=[
        'pydantic>=2',
        'pyparted',
        'cryptography>=44',
    ],
    extras_require={
        'test': ['pytest'],
        'journald': ['systemd-python'],
    },
    entry_points={
        'console_scripts': [
            'goldinstall=goldinstall:run_as_a_module',
        ],
    },
)
