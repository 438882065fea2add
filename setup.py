"""Setup script for the chat system."""

from setuptools import setup, find_namespace_packages

setup(
    name="ahs-chat",
    version="1.0.0",
    description="Text and voice chat with Gemini, including code blocks and generated images",
    author="Abdul Hadi",
    packages=find_namespace_packages(include=['ahs_chat', 'ahs_chat.*']),
    python_requires=">=3.11",
    install_requires=[
        "python-dotenv>=1.0.0",
        "google-generativeai>=0.8.3",
        "google-api-core>=2.11.0",
        "structlog>=23.0.0",
        "click>=8.0.0",
        "numpy>=1.24.0",
        "sounddevice>=0.4.6",
        "soundfile>=0.12.1",
        "webrtcvad-wheels>=2.0.11",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ahs-chat=ahs_chat.cli.main:cli",
        ],
    },
)
