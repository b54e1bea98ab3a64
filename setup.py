# setup.py
from setuptools import setup, find_namespace_packages

setup(
    name="chain_reaction",
    version="0.1.0",
    description="Escalating-stake, last-player-wins chain game state machine",
    packages=find_namespace_packages(include=["chain_reaction", "chain_reaction.*"]),
    python_requires=">=3.10",
    install_requires=[
        "msgpack",            # state, ledger and event encoding
        "plyvel",             # LevelDB storage
        "cryptography",       # player addresses from ECDSA keys
        "pycryptodome",       # keccak-256 operation ids
        "prometheus_client",  # metrics
        "psutil",             # process gauges
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "chain-reaction=chain_reaction.cli:main",
        ],
    },
)
