"""Create, build and deploy serverless applications on AWS Lambda with Terraform."""

__version__ = "0.2.0"