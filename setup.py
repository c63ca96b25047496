from setuptools import find_namespace_packages, setup

setup(
    name="sports-reels-backend",
    version="0.1.0",
    packages=find_namespace_packages(include=["services*", "shared*", "models*"]),
    py_modules=["app", "database"],
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "pydantic>=2.5",
        "sqlalchemy>=2.0",
        "alembic>=1.13",
        "redis>=5.0",
        "aiohttp>=3.9",
        "openai>=1.12",
        "python-dotenv>=1.0",
        "PyYAML>=6.0",
        "Pillow>=10.1",
        "boto3>=1.34",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.26",
        ],
    },
    include_package_data=True,
    data_files=[("config", ["config/pipeline.yaml"])],
    description="Backend package for queued sports reel generation (script, speech, video, storage)",
    author="Andreas Malathouras",
    author_email="steelstridertgm@gmail.com",
)
