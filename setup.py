from setuptools import setup, find_packages

setup(
    name="trace-query",
    version="0.1.0",
    description="Two-phase trace search over Elasticsearch and OpenSearch span indices",
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    package_dir={"": "src"},
    packages=find_packages(where="src", include=["trace_query*"]),
    install_requires=[
        "elasticsearch[async]>=8.0.0,<9.0.0",
        "opensearch-py[async]>=2.0.0",
        "pydantic>=2.8.2",
        "pydantic-settings>=2.0.0",
        "python-dotenv",
    ],
    classifiers=[
        "Programming Language :: Python :: 3",
    ],
    python_requires='>=3.11,<3.14',
)
