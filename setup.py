from setuptools import setup, find_packages

setup(
    name="compositional_tools",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        # Core data processing
        "pandas>=1.3.0",
        "numpy>=1.20.0",
        "scipy>=1.9.0",
        
        # Statistical and scientific libraries
        "scikit-bio>=0.6.0",
        "scikit-learn>=1.0.0", 
        "scikit-posthocs>=0.7.0",
        "statsmodels>=0.13.0",
        
        # Configuration
        "PyYAML>=6.0",
        
        # System monitoring and utilities
        "psutil>=5.9.0",
        "tqdm>=4.62.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'compositional-tools=compositional_tools.cli.analyze_cli:main',
        ],
    },
    author="David Haslam",
    author_email="dbhaslam@gmail.com",
    description="Compositional differential abundance, PERMANOVA, ordination and feature ranking for microbiome count tables",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Intended Audience :: Science/Research",
    ],
    python_requires=">=3.8",
)
