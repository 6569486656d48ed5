"""Copy container images between ECR registries."""

__version__ = "0.1.0"
