from setuptools import setup, find_packages

setup(
    name="ppg-vitals",
    version="0.1.0",
    description="Blood pressure and glucose estimation from camera PPG",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
        "scipy>=1.10",
        "opencv-python>=4.8",
        "pydantic>=2.5",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": ["pytest>=7.4"],
        "onnx": ["onnxruntime>=1.16"],
    },
    entry_points={
        "console_scripts": [
            "ppg-vitals=main:run",
        ]
    },
)
