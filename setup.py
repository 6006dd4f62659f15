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


readme = ROOT / "README.md"
long_description = readme.read_text(encoding="utf-8") if readme.exists() else ""

setuptools.setup(
    name="dualdnn",
    version="0.1.0",
    description=(
        "Dual-resident (host + CUDA) tensors with shared buffers, layout "
        "descriptors, cross-entropy cost kernels and a gradient-check oracle."
    ),
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: Microsoft :: Windows",
        "Operating System :: POSIX :: Linux",
    ],
    package_dir={"": "src"},
    packages=setuptools.find_namespace_packages(where="src", include=["dualdnn*"]),
    python_requires=">=3.10",
    install_requires=read_requirements(),
    extras_require={"test": ["pytest"]},
    include_package_data=True,
    zip_safe=False,
    package_data={
        "dualdnn": [
            "infrastructure/native_cuda/dualdnn_cuda_native/*.cu",
            "infrastructure/native_cuda/dualdnn_cuda_native/x64/Release/*.dll",
            "infrastructure/native_cuda/dualdnn_cuda_native/build/*.so",
        ],
    },
)
