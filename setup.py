from setuptools import setup, find_packages

setup(
    name="bus-notifier",
    version="0.1.0",
    description="Scheduled bus arrival reminders delivered over Telegram",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "apscheduler>=3.10.0,<4",
        "python-telegram-bot>=20.0",
        "aiohttp>=3.9.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.0.0",
        "loguru>=0.7.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "bus-notifier=bus_notifier.main:main",
        ],
    },
)
