from setuptools import setup, find_packages

setup(name='pincal',
      version='1.0.0',
      description='Pinhole projection models with pluggable lens distortion and intrinsics initialization',
      packages=find_packages(include=['pincal', 'pincal.*']),
      python_requires='>=3.10',
      install_requires=['numpy', 'scipy', 'opencv-python', 'lxml'],
      extras_require={'test': ['pytest']})
