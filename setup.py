#!/usr/bin/env python

from setuptools import setup

setup(
    name="filedepot",
    version="1.0.0",
    description="API for storing folders, files and images with background thumbnail generation",
    packages=["filedepot", "filedepot.api", "filedepot.stores", "filedepot.thumbnails"],
    include_package_data=True,
    zip_safe=False,
    keywords=["API", "files", "thumbnails"],
    classifiers=[
        "License :: OSI Approved :: MIT License",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    ],
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "uvicorn",
        "elasticsearch[async]~=8.6",
        "redis>=5.0.1",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "bcrypt",
        "Pillow>=9.1",
    ],
    extras_require={
        'test': [
            'pytest',
            'anyio',
            'httpx',
        ],
        'dev': [
            'pytest',
            'anyio',
            'httpx',
            'mypy',
            'flake8',
        ],
    },
    entry_points={
        'console_scripts': [
            'filedepot = filedepot.__main__:main'
        ]
    },
)
