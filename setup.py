from setuptools import setup


def get_version():
    # Read the version from the package without importing it, as the
    # dependencies may not yet be installed.
    with open("pyacg/core.py") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"')
    raise ValueError("Version not found")


def main():
    setup(
        name="pyacg",
        version=get_version(),
        description="Ancestral conversion graphs for bacterial genomes",
        license="GPLv3+",
        packages=["pyacg"],
        python_requires=">=3.8",
        install_requires=["numpy", "newick>=1.11", "daiquiri"],
        extras_require={"test": ["pytest"]},
        entry_points={"console_scripts": ["pyacg=pyacg.cli:pyacg_main"]},
    )


if __name__ == "__main__":
    main()
