"""stopsense 打包配置。"""

from __future__ import annotations

from setuptools import find_packages, setup


VERSION = "0.1.0"


setup(
    name="stopsense",
    version=VERSION,
    description="基于加速度、提示音与语音播报的公共交通到站检测",
    python_requires=">=3.9",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    include_package_data=True,
    install_requires=[
        "numpy>=1.24",
        "pydantic>=2.0",
        "fastapi>=0.100",
        "uvicorn>=0.23",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.24",
        ],
    },
)
