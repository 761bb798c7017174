#package configuration file
#!/usr/bin/env python3
from setuptools import setup
setup(
    name='gitlet',
    version='1.0',
    packages=['gitlet'],
    python_requires='>=3.8',
    extras_require={
        'test': ['pytest']
    },
    entry_points={
        'console_scripts':[
            'gitlet=gitlet.cli:main'
        ]
    }
)
