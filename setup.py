from setuptools import find_packages, setup

setup(
    name="songrec-client",
    version="0.5.0",
    description="An open-source Shazam client library and CLI",
    packages=find_packages(include=["songrec", "songrec.*"]),
    install_requires=[
        "numpy",
        "librosa",
        "soundfile",
        "sounddevice",
        "requests",
        "pydantic>=2",
        "pydantic-settings",
        "python-dotenv",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-cov",
            "pytest-mock",
        ],
    },
    entry_points={
        "console_scripts": [
            "songrec=songrec.cli:main",
        ],
    },
    python_requires=">=3.9",
)
