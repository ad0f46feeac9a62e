from setuptools import setup, find_packages

setup(
    name="healthtrack",
    version="0.1.0",
    packages=find_packages(exclude=["tests*"]),
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy",
        "psycopg2-binary",
        "python-jose[cryptography]",
        "python-dotenv",
        "pydantic",
        "pydantic-settings",
        "croniter",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
