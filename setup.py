from setuptools import setup

setup(
    name='pychainlift',
    version='0.1.0',
    description='Genome coordinate liftover over UCSC chain files',
    install_requires=['pandas', 'numpy'],
    extras_require={'test': ['pytest']},
    packages=['pychainlift'],
    python_requires='>=3.10',
    zip_safe=False
)
