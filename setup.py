"""
Setup script for SensorBundleAdjustment.
"""

from setuptools import setup, find_packages
import os


def read_readme():
    """Read README file for long description."""
    if os.path.exists('README.md'):
        with open('README.md', 'r', encoding='utf-8') as f:
            return f.read()
    return "Camera adapters and residual functions for sensor bundle adjustment"


# Core requirements (always installed)
install_requires = [
    'numpy>=1.19.0',
    'scipy>=1.7.0',
    'opencv-python>=4.5.0',
    'pandas>=1.2.0',
    'pyproj>=3.1.0'
]

# Optional dependencies for different use cases
extras_require = {
    'dev': [
        'pytest>=6.0.0',
        'pytest-cov>=2.12.0'
    ]
}

setup(
    name="sensor-bundle-adjustment",
    version="1.0.0",
    description="Camera adapters and residual functions for photogrammetric bundle adjustment",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=['tests', 'tests.*']),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: GIS",
        "Topic :: Scientific/Engineering :: Image Processing",
    ],
    python_requires=">=3.9",
    install_requires=install_requires,
    extras_require=extras_require,
    keywords=[
        "bundle adjustment",
        "photogrammetry",
        "pinhole",
        "optical bar",
        "linescan",
        "least squares"
    ],
)
