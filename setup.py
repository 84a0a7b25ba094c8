#!/usr/bin/env python
from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='django-adquery',
    version='1.0.0',
    description='Asyncio Active Directory searches with ranged attributes, referrals and nested groups',
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords=['django', 'ldap', 'active directory', 'asyncio'],
    author="Caltech IMSS ADS",
    author_email="imss-ads-staff@caltech.edu",
    url='https://github.com/caltechads/django-adquery',
    packages=find_packages(exclude=['bin']),
    include_package_data=True,
    install_requires=[
        'Django',
        'pytz',
        'ldap_filter',
        'python-ldap',
        'pyasn1',
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
