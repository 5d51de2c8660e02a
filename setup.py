# ============================================
# SlippageGuard - setup.py
# Python packaging setup
# ============================================

import re
from pathlib import Path
from setuptools import setup, find_packages

# Read version from the package __init__
def get_version():
    """Get version from src/slippage_guard/__init__.py or fallback to default"""
    init_path = Path(__file__).parent / "src" / "slippage_guard" / "__init__.py"
    if init_path.exists():
        match = re.search(r'^__version__\s*=\s*["\']([^"\']+)["\']',
                          init_path.read_text(encoding="utf-8"), re.MULTILINE)
        if match:
            return match.group(1)
    return "1.0.0"

# Read README for long description
def get_long_description():
    """Get long description from README.md"""
    readme_path = Path(__file__).parent / "README.md"
    if readme_path.exists():
        with open(readme_path, "r", encoding="utf-8") as f:
            return f.read()
    return "Slippage estimation and pre-trade slippage protection for market orders"

# Read requirements.txt
def get_requirements():
    """Parse requirements.txt for dependencies"""
    requirements_path = Path(__file__).parent / "requirements.txt"
    requirements = []

    if requirements_path.exists():
        with open(requirements_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                # Skip comments and empty lines
                if line and not line.startswith("#"):
                    if "#" in line:
                        line = line.split("#")[0].strip()
                    if not line.startswith("-"):
                        requirements.append(line)

    return requirements

# Development dependencies
def get_dev_requirements():
    """Get development dependencies"""
    return [
        "pytest>=8.3.2",
        "pytest-cov>=5.0.0",
        "pytest-mock>=3.14.0",
    ]

extras_require = {
    "dev": get_dev_requirements(),
}

# Package configuration
setup(
    name="slippageguard",
    version=get_version(),
    description="Order-book slippage estimation, pre-trade protection and order splitting",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",

    # Package discovery
    packages=find_packages(where="src"),
    package_dir={"": "src"},

    include_package_data=True,
    package_data={
        "": ["*.yaml", "*.yml"],
    },

    python_requires=">=3.10",

    install_requires=get_requirements(),
    extras_require=extras_require,

    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Financial :: Investment",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],

    keywords=["slippage", "order-book", "market-depth", "trading", "risk", "finance"],

    zip_safe=False,
)
