from setuptools import setup, find_packages

setup(
    name="lyricsync",
    version="0.1.0",
    description="Keep lyrics in step with the song playing in your MPRIS-compatible music player, finding them locally or online",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    python_requires=">=3.10",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"lyricsync": ["py.typed"]},
    install_requires=[
        "colorama",
        "regex",
        "dbus-python",
        "requests",
        "typer",
    ],
    extras_require={
        "dev": [
            "pytest",
            "black",
            "ruff",
            "mypy",
        ]
    },
    entry_points={
        "console_scripts": [
            "lyricsync=lyricsync.cli:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
        "Topic :: Utilities",
    ],
    keywords="lyrics terminal mpris music lrc lrcx synchronized",
)
