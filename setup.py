from setuptools import setup

description = 'Processor for the dnode remote-invocation protocol'

setup(
    name='dnode',
    version='0.1.0',
    description=description,
    long_description=description,
    author='dnode maintainers',
    python_requires='>=3.9',
    packages=['dnode', 'dnode.tools'],
    install_requires=[
        'cbor2>=5,<6',
        'click>=8,<9',
        'orjson>=3,<4',
        'pyzmq>=22',
        'structlog>=21',
        'uvloop>=0.18,<1',
        'PyYAML>=5',
    ],
    extras_require={
        'test': [
            'pytest>=7',
            'pytest-asyncio>=0.21',
            'pytest-mock>=3',
        ],
    },
    entry_points={
        'console_scripts': ['dnode=dnode.cli:cli'],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Natural Language :: English',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3.9',
    ],
    package_data={
        'dnode': ['py.typed'],
    },
)
