import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="seqproc",
    version="0.1.0",
    description="geometry driven preprocessing of paired-end sequencing reads",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    install_requires = ['polars',
                        'pysam',
                        'regex',
                        'rich',
                        'pyyaml',
                        'pyaml'],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': ['seqproc=seqproc.cli:main'],
    },
    python_requires='>=3.10',
)
# python3 setup.py sdist bdist_wheel
