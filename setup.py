from setuptools import setup, find_packages

setup(
    name="dbferry",
    version="1.0.0",
    description="CLI tool for moving SQL query results between heterogeneous databases",
    author="Your Name",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "psycopg2-binary>=2.9.0",
        "PyMySQL>=1.1.0",
        "pymssql>=2.2.8",
        "oracledb>=2.0.0",
        "duckdb>=0.10.0",
        "PyYAML>=6.0",
        "click>=8.0.0",
        "tqdm>=4.65.0",
        "colorama>=0.4.6",
        "jsonschema>=4.17.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-mock>=3.10.0",
            "black>=23.0.0",
            "flake8>=6.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dbferry=dbferry.cli:main",
        ],
    },
    python_requires=">=3.8",
)
