import os
import os.path
import setuptools # type: ignore

root_path = os.path.dirname(__file__)

with open(os.path.join(root_path, "README.md"), "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="ucmflow",
    version="0.1.0",
    description="ucmflow: narrative flow enforcement over Use Case Maps with a tick driven event scripting interpreter.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(where="src"),
    package_dir={'': 'src'},

    package_data={
        'ucmflow': ['py.typed'],
        'ucmflow.data': ['*.toml', 'examples/*'],
    },
    include_package_data=True,
    zip_safe=False,
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    install_requires=[
        "numpy",
        "graphviz",
        "ipdb",
        "toml",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    python_requires='>=3.10',
    entry_points={
        'console_scripts': [
            'ucmflow = ucmflow.cli:main',
        ],
    },
)
