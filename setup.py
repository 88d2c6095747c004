import setuptools
import os

own_dir = os.path.abspath(os.path.dirname(__file__))


def _read_requirements(fname: str):
    with open(os.path.join(own_dir, fname)) as f:
        for line in f.readlines():
            line = line.strip()
            if not line or line.startswith('#'):
                continue

            yield line


def requirements():
    yield from _read_requirements('requirements.txt')


def test_requirements():
    yield from _read_requirements('requirements.test.txt')


def packages():
    return [
        'imagestream',
        'kube',
    ]


def version():
    with open(os.path.join(own_dir, 'VERSION')) as f:
        return f.read().strip()


setuptools.setup(
    name='imagestream-import-controller',
    version=version(),
    description='imports image stream tags from remote registries, once or periodically',
    python_requires='>=3.11',
    py_modules=[],
    packages=packages(),
    install_requires=list(requirements()),
    extras_require={
        'test': list(test_requirements()),
    },
    entry_points={
        'console_scripts': [
            'imagestream-controller = imagestream.__main__:main',
        ],
    },
)
