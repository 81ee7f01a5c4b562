from setuptools import find_packages, setup

setup(
    name='webserialbridge',
    version='1.0.0',
    description='Web Serial API bridge between a sandboxed context and a host serial device',
    author='isantolin',
    author_email='',
    packages=find_packages(include=['webserialbridge', 'webserialbridge.*']),
    python_requires='>=3.11',
    install_requires=[
        'msgspec',
        'transitions',
        'tenacity',
        'pyserial',
        'pyserial-asyncio-fast',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
