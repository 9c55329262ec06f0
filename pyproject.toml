[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "coupon-issuance"
version = "0.1.0"
description = "Campaign and coupon issuance service with limited, time-boxed campaigns and unique Hangul coupon codes"
requires-python = ">=3.10"
dependencies = []
keywords = ["coupon", "campaign", "issuance", "connect", "rpc", "wsgi"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
coupon-issuance-server = "coupon_issuance.server:main"

[tool.hatch.build.targets.wheel]
packages = ["coupon_issuance"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
