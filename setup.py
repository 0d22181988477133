from setuptools import setup
from os import path

here = path.abspath(path.dirname(__file__))

# Read the requirements from requirements.txt
with open(path.join(here, 'requirements.txt')) as f:
    requires = f.read().strip().split('\n')

# Get the long description from the README file
with open(path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

short_description = (
    """Build a photomosaic from tile images collected on demand from an
    online gallery.""")

extras_require = {
      'test': ['pytest', 'pytest-cov'],
}
extras_require['complete'] = sorted(set(sum(extras_require.values(), [])))

setup(
    name='webmosaic',
    version='0.1.0',
    description=short_description,
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='BSD 3-Clause',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: BSD License',
        'Programming Language :: Python :: 3',
    ],
    keywords='art image color mosaic',
    packages=['webmosaic'],
    python_requires='>=3.8',
    install_requires=requires,
    extras_require=extras_require,
    entry_points={
        'console_scripts': ['webmosaic = webmosaic.cli:main'],
    },
)
