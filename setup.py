from setuptools import setup, find_packages

setup(
    name="dgen",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0",
        "pyyaml>=6.0",
        "click>=8.0",
        "tenacity>=8.0",
        "python-dotenv>=1.0",
        "jinja2>=3.0",
        "docker>=7.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "psutil>=5.9",
        ],
    },
    entry_points={
        "console_scripts": [
            "dgen=dgen.CLI.main:main",
        ],
    },
)
