import setuptools
from pathlib import Path

ROOT = Path(__file__).parent


def read_requirements(filename: str = "requirements.txt") -> list[str]:
    req_path = ROOT / filename
    if not req_path.exists():
        return []
    reqs: list[str] = []
    for line in req_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        reqs.append(line)
    return reqs


long_description = (ROOT / "README_PYPI.md").read_text(encoding="utf-8")

setuptools.setup(
    name="keysolver",
    version="0.1.0a0",  # PEP 440 compliant
    description=(
        "keysolver is an iterative optimization engine for layer-graph neural "
        "networks: momentum, Nesterov, AdaGrad, AdaDelta and RMSProp update "
        "rules, learning-rate schedules, periodic evaluation and bit-exact "
        "checkpoint/resume on CPU or CUDA."
    ),
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    package_dir={"": "src"},
    packages=setuptools.find_namespace_packages(where="src", include=["keysolver*"]),
    python_requires=">=3.10",
    install_requires=read_requirements(),
    extras_require={
        "test": ["pytest>=7.0", "python-dotenv>=1.0"],
    },
    entry_points={
        "console_scripts": ["keysolver=keysolver.cli:main"],
    },
    include_package_data=True,
    zip_safe=False,
    package_data={
        "keysolver": [
            "infrastructure/native_cuda/lib/*.dll",
            "infrastructure/native_cuda/lib/*.so",
            "infrastructure/native_cuda/lib/*.dylib",
        ],
    },
)
