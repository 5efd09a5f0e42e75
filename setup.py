from setuptools import setup, find_packages

setup(
    name="efsclean",
    version="0.1.0",
    packages=find_packages(exclude=["src.tests", "src.tests.*"]),
    py_modules=["cli"],
    install_requires=[
        "boto3",
        "botocore",
    ],
    extras_require={
        "test": [
            "pytest",
            "moto[s3]>=5",
        ],
    },
    entry_points={
        'console_scripts': [
            'efsclean=cli:main',
        ],
    },
    description="EFS artifact cleanup for S3 object-created events",
    python_requires='>=3.8',
)
