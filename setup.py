"""
Setup script for the pdf-raster-service project.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="pdf-raster-service",
    version="1.0.0",
    packages=find_packages(include=["raster_service", "raster_service.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "python-dotenv>=1.0",
        "python-multipart>=0.0.9",
        "PyMuPDF>=1.23",
        "pdf2image>=1.17",
        "Pillow>=10.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.26",
        ],
    },
    entry_points={
        "console_scripts": [
            "raster-service=raster_service.__main__:main",
        ],
    },
)
