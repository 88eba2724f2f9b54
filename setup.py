from setuptools import find_packages, setup

setup(
    name="keygate",
    version="0.1.0",
    packages=find_packages(include=["keygate", "keygate.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "sqlalchemy>=2.0",
        "requests",
        "click",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "keygate=keygate.cli:cli",
        ],
    },
)
