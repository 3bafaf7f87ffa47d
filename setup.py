from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="quickgit",
    version="1.0.1",
    author="Elena Surovtseva",
    author_email="your.email@example.com",
    description="Create GitHub/Gitee repositories and wire the local working copy to them in one guided run",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/Otazka/quickgit",
    # Flat layout: single-module entry point plus its helpers
    py_modules=[
        "repo_provisioner",
        "error_handling",
        "settings",
        "prompts",
        "gitignore_templates",
    ],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Version Control :: Git",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "quickgit=repo_provisioner:main",
        ],
    },
    keywords="git, github, gitee, repository, init, remote, automation",
    project_urls={
        "Bug Reports": "https://github.com/Otazka/quickgit/issues",
        "Source": "https://github.com/Otazka/quickgit",
    },
)
