from setuptools import setup, find_packages

setup(
    name='clustervalidate',
    version='0.1.0',
    packages=find_packages(exclude=['clustervalidate.tests']),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'rich',
        'python-dotenv',
        'pydantic>=2',
        'pyyaml',
        'jsonschema',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'clustervalidate=clustervalidate.cli:run'
        ]
    },
    description='End-to-end validation harness for freshly provisioned RKE2 clusters',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)
