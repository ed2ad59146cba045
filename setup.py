#!/usr/bin/env python
from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='django-ldapstore',
    version='1.0.0',
    description='A file-backed, multi-process safe directory backend for LDAP servers',
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords=['django', 'ldap', 'directory'],
    author="Caltech IMSS ADS",
    author_email="imss-ads-staff@caltech.edu",
    packages=find_packages(exclude=['bin']),
    include_package_data=True,
    python_requires='>=3.10',
    install_requires=[
        'Django',
        'ldap_filter',
        'python-ldap',
        'PyYAML',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3"
    ],
)
