"""Install arXiv SAML service provider package."""

from setuptools import setup, find_packages

setup(
    name='arxiv-samlsp',
    version='0.1.0',
    packages=[f'arxiv.{package}' for package
              in find_packages('./arxiv', exclude=['*test*'])],
    install_requires=[
        "flask",
        "werkzeug",
        "pyjwt",
        "pydantic>=2",
        "itsdangerous",
        "redis",
        "pytz"
    ],
    extras_require={
        "test": ["pytest"]
    },
    zip_safe=False
)
