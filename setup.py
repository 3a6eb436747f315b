import setuptools


setuptools.setup(
    name="tiny-pgvenv",
    version="0.1.0",
    description="Run a command against a disposable postgres server.",
    python_requires=">=3.8",
    packages=["pgvenv"],
    install_requires=[
        "pg8000",
        "retry",
        "typer",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "pgvenv = pgvenv.__main__:main",
        ],
    },
)
